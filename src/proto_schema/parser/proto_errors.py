"""Exceptions raised while tokenizing, parsing or building proto schemas."""

from __future__ import annotations

from typing import Optional


class ProtoParseError(Exception):
    """Base class for every error raised by proto_schema."""

    def __init__(
        self,
        message: str,
        file_name: Optional[str] = None,
        line: Optional[int] = None,
        col: Optional[int] = None,
    ):
        self.file_name = file_name
        self.line = line
        self.col = col
        self.reason = message
        if line is not None:
            location = f"{file_name or '<string>'}:{line}:{col}"
            super().__init__(f"{location}: {message}")
        else:
            super().__init__(message)


class ProtoLexError(ProtoParseError):
    """Malformed token: unterminated string/comment, bad escape or number."""

    def __init__(
        self,
        message: str,
        file_name: Optional[str] = None,
        line: Optional[int] = None,
        col: Optional[int] = None,
        fragment: str = "",
    ):
        super().__init__(message, file_name, line, col)
        self.fragment = fragment


class ProtoSyntaxError(ProtoParseError):
    """The token stream does not match the expected production."""

    def __init__(
        self,
        message: str,
        file_name: Optional[str] = None,
        line: Optional[int] = None,
        col: Optional[int] = None,
        expected: str = "",
        found: str = "",
    ):
        super().__init__(message, file_name, line, col)
        self.expected = expected
        self.found = found


class ProtoValidationError(ProtoParseError):
    """Well-formed input that breaks a syntax-level rule (tags, names, labels)."""
