"""Tokenizer for protobuf (.proto) schema files.

Tokens are produced lazily. Comments never become tokens: a run of comments
that starts on its own line and is directly followed by a token (no blank line
in between) is attached to that token as ``documentation``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator, List

from .proto_errors import ProtoLexError


class ProtoTokenType(Enum):
    # Literals
    IDENT = auto()
    INT = auto()
    FLOAT = auto()
    STRING_LIT = auto()

    # Delimiters
    LBRACE = auto()
    RBRACE = auto()
    LPAREN = auto()
    RPAREN = auto()
    LBRACKET = auto()
    RBRACKET = auto()
    LANGLE = auto()
    RANGLE = auto()
    EQUALS = auto()
    SEMICOLON = auto()
    COMMA = auto()
    DOT = auto()
    COLON = auto()

    # Special
    EOF = auto()


_PUNCTUATION = {
    "{": ProtoTokenType.LBRACE,
    "}": ProtoTokenType.RBRACE,
    "(": ProtoTokenType.LPAREN,
    ")": ProtoTokenType.RPAREN,
    "[": ProtoTokenType.LBRACKET,
    "]": ProtoTokenType.RBRACKET,
    "<": ProtoTokenType.LANGLE,
    ">": ProtoTokenType.RANGLE,
    "=": ProtoTokenType.EQUALS,
    ";": ProtoTokenType.SEMICOLON,
    ",": ProtoTokenType.COMMA,
    ".": ProtoTokenType.DOT,
    ":": ProtoTokenType.COLON,
}

_SIMPLE_ESCAPES = {
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "v": "\v",
    "\\": "\\",
    "'": "'",
    '"': '"',
    "?": "?",
}

_IDENT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_NUMBER_RE = re.compile(
    r"-?(?:"
    r"0[xX][0-9A-Fa-f]*"
    r"|\d+\.\d*(?:[eE][+-]?\d+)?"
    r"|\.\d+(?:[eE][+-]?\d+)?"
    r"|\d+[eE][+-]?\d+"
    r"|\d+"
    r")"
)
_HEX_DIGITS = "0123456789abcdefABCDEF"
_OCTAL_DIGITS = "01234567"


@dataclass(frozen=True)
class ProtoToken:
    type: ProtoTokenType
    value: str
    line: int
    col: int
    documentation: str = ""


def parse_int_literal(text: str) -> int:
    """Convert a decimal, hex (0x..) or octal (0..) literal to an int."""
    negative = text.startswith("-")
    digits = text[1:] if negative else text
    if digits[:2] in ("0x", "0X"):
        value = int(digits[2:], 16)
    elif len(digits) > 1 and digits.startswith("0"):
        value = int(digits[1:], 8)
    else:
        value = int(digits)
    return -value if negative else value


class ProtoTokenizer:
    """Lazily converts proto source text into ProtoTokens."""

    def __init__(self, text: str, file_name: str = ""):
        self._text = text
        self._file_name = file_name
        self._pos = 0
        self._line = 1
        self._col = 1
        self._doc_lines: List[str] = []
        # Newlines seen since the last token or comment.
        self._newlines = 0
        self._last_token_line = 0

    def __iter__(self) -> Iterator[ProtoToken]:
        return self.tokens()

    def tokens(self) -> Iterator[ProtoToken]:
        text = self._text
        n = len(text)

        while True:
            self._skip_trivia()
            line, col = self._line, self._col
            if self._pos >= n:
                yield ProtoToken(ProtoTokenType.EOF, "", line, col)
                return

            ch = text[self._pos]
            nxt = text[self._pos + 1] if self._pos + 1 < n else ""
            documentation = self._take_documentation()

            if ch.isdigit() or (ch in "-." and nxt.isdigit()):
                tok_type, value = self._read_number()
            elif ch in _PUNCTUATION:
                tok_type, value = _PUNCTUATION[ch], ch
                self._consume(self._pos + 1)
            elif ch in ("'", '"'):
                tok_type, value = ProtoTokenType.STRING_LIT, self._read_string()
            elif ch.isalpha() or ch == "_":
                match = _IDENT_RE.match(text, self._pos)
                tok_type, value = ProtoTokenType.IDENT, match.group(0)
                self._consume(match.end())
            else:
                raise self._error(f"Unexpected character {ch!r}", line, col, ch)

            self._last_token_line = self._line
            self._newlines = 0
            yield ProtoToken(tok_type, value, line, col, documentation)

    # -- trivia --

    def _skip_trivia(self) -> None:
        """Skip whitespace and comments, collecting documentation lines."""
        text = self._text
        n = len(text)

        while self._pos < n:
            ch = text[self._pos]

            if ch == "\n":
                self._consume(self._pos + 1)
                self._newlines += 1
                if self._newlines > 1:
                    self._doc_lines = []
                continue

            if ch in (" ", "\t", "\r", "\f", "\v"):
                self._consume(self._pos + 1)
                continue

            if text.startswith("//", self._pos):
                trailing = self._line == self._last_token_line
                end = text.find("\n", self._pos)
                if end == -1:
                    end = n
                lines = [text[self._pos + 2:end].strip()]
                self._consume(end)
                self._note_comment(lines, trailing)
                continue

            if text.startswith("/*", self._pos):
                trailing = self._line == self._last_token_line
                end = text.find("*/", self._pos + 2)
                if end == -1:
                    raise self._error(
                        "Unterminated block comment", self._line, self._col, "/*"
                    )
                lines = _clean_block_comment(text[self._pos + 2:end])
                self._consume(end + 2)
                self._note_comment(lines, trailing)
                continue

            return

    def _note_comment(self, lines: List[str], trailing: bool) -> None:
        # A comment after a token on the same line never documents the next one.
        if not trailing:
            self._doc_lines.extend(lines)
        self._newlines = 0

    def _take_documentation(self) -> str:
        lines = self._doc_lines
        self._doc_lines = []
        while lines and not lines[0]:
            lines.pop(0)
        while lines and not lines[-1]:
            lines.pop()
        return "\n".join(lines)

    # -- literals --

    def _read_number(self):
        text = self._text
        start, line, col = self._pos, self._line, self._col
        match = _NUMBER_RE.match(text, start)
        end = match.end()
        value = match.group(0)

        if end < len(text) and (text[end].isalnum() or text[end] in "_."):
            raise self._error(
                f"Invalid numeric literal {text[start:end + 1]!r}",
                line,
                col,
                text[start:end + 1],
            )

        digits = value.lstrip("-")
        if digits[:2] in ("0x", "0X"):
            if len(digits) == 2:
                raise self._error(
                    f"Invalid hex literal {value!r}", line, col, value
                )
            tok_type = ProtoTokenType.INT
        elif any(c in digits for c in ".eE"):
            tok_type = ProtoTokenType.FLOAT
        else:
            if len(digits) > 1 and digits.startswith("0") and any(
                c not in _OCTAL_DIGITS for c in digits
            ):
                raise self._error(
                    f"Invalid octal literal {value!r}", line, col, value
                )
            tok_type = ProtoTokenType.INT

        self._consume(end)
        return tok_type, value

    def _read_string(self) -> str:
        text = self._text
        n = len(text)
        quote = text[self._pos]
        line, col = self._line, self._col
        i = self._pos + 1
        chars: List[str] = []

        while True:
            if i >= n or text[i] == "\n":
                raise self._error(
                    "Unterminated string literal", line, col, text[self._pos:i]
                )
            ch = text[i]
            if ch == quote:
                break
            if ch != "\\":
                chars.append(ch)
                i += 1
                continue

            esc = text[i + 1] if i + 1 < n else ""
            esc_col = col + (i - self._pos)
            if esc in _SIMPLE_ESCAPES:
                chars.append(_SIMPLE_ESCAPES[esc])
                i += 2
            elif esc in ("x", "X"):
                j = i + 2
                while j < n and j < i + 4 and text[j] in _HEX_DIGITS:
                    j += 1
                if j == i + 2:
                    raise self._error(
                        "Invalid escape sequence", line, esc_col, text[i:j]
                    )
                chars.append(chr(int(text[i + 2:j], 16)))
                i = j
            elif esc and esc in _OCTAL_DIGITS:
                j = i + 1
                while j < n and j < i + 4 and text[j] in _OCTAL_DIGITS:
                    j += 1
                chars.append(chr(int(text[i + 1:j], 8)))
                i = j
            elif esc in ("u", "U"):
                width = 4 if esc == "u" else 8
                digits = text[i + 2:i + 2 + width]
                if len(digits) != width or any(c not in _HEX_DIGITS for c in digits):
                    raise self._error(
                        "Invalid unicode escape",
                        line,
                        esc_col,
                        text[i:i + 2 + width],
                    )
                chars.append(chr(int(digits, 16)))
                i += 2 + width
            else:
                raise self._error(
                    f"Invalid escape sequence '\\{esc}'", line, esc_col, text[i:i + 2]
                )

        self._consume(i + 1)
        return "".join(chars)

    # -- position helpers --

    def _consume(self, end: int) -> None:
        chunk = self._text[self._pos:end]
        newlines = chunk.count("\n")
        if newlines:
            self._line += newlines
            self._col = len(chunk) - chunk.rfind("\n")
        else:
            self._col += len(chunk)
        self._pos = end

    def _error(self, message: str, line: int, col: int, fragment: str) -> ProtoLexError:
        return ProtoLexError(message, self._file_name, line, col, fragment)


def _clean_block_comment(body: str) -> List[str]:
    lines = []
    for raw in body.split("\n"):
        line = raw.strip()
        if line.startswith("*"):
            line = line[1:].strip()
        lines.append(line)
    return lines


def tokenize_proto(text: str, file_name: str = "") -> Iterator[ProtoToken]:
    """Tokenize a protobuf source string, ending with an EOF token."""
    return ProtoTokenizer(text, file_name).tokens()
