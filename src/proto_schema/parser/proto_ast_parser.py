"""Recursive descent parser for protobuf (.proto) files.

Consumes a token stream from proto_tokenizer and produces proto AST nodes.
Parsing stops at the first error.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple

from .proto_ast import (
    EnumConstantElement,
    EnumElement,
    ExtendElement,
    ExtensionsElement,
    FieldElement,
    FieldLabel,
    MessageElement,
    OneofElement,
    OptionElement,
    OptionKind,
    OptionValue,
    ProtoFile,
    ProtoSyntax,
    ReservedElement,
    RpcElement,
    ServiceElement,
)
from .proto_errors import ProtoSyntaxError, ProtoValidationError
from .proto_tags import MAX_TAG_VALUE, is_valid_tag
from .proto_tokenizer import ProtoToken, ProtoTokenType, parse_int_literal

_LABELS = {label.value: label for label in FieldLabel}

# Where a field is declared; decides which label rules apply.
_MESSAGE = "message"
_EXTEND = "extend"
_ONEOF = "oneof"

_TOKEN_NAMES = {
    ProtoTokenType.IDENT: "identifier",
    ProtoTokenType.INT: "integer",
    ProtoTokenType.FLOAT: "float",
    ProtoTokenType.STRING_LIT: "string",
    ProtoTokenType.LBRACE: "'{'",
    ProtoTokenType.RBRACE: "'}'",
    ProtoTokenType.LPAREN: "'('",
    ProtoTokenType.RPAREN: "')'",
    ProtoTokenType.LBRACKET: "'['",
    ProtoTokenType.RBRACKET: "']'",
    ProtoTokenType.LANGLE: "'<'",
    ProtoTokenType.RANGLE: "'>'",
    ProtoTokenType.EQUALS: "'='",
    ProtoTokenType.SEMICOLON: "';'",
    ProtoTokenType.COMMA: "','",
    ProtoTokenType.DOT: "'.'",
    ProtoTokenType.COLON: "':'",
    ProtoTokenType.EOF: "end of input",
}


def _describe(tok: ProtoToken) -> str:
    if tok.type in (ProtoTokenType.IDENT, ProtoTokenType.INT, ProtoTokenType.FLOAT):
        return f"{_TOKEN_NAMES[tok.type]} {tok.value!r}"
    if tok.type == ProtoTokenType.STRING_LIT:
        return f"string {tok.value!r}"
    return _TOKEN_NAMES[tok.type]


class ProtoParser:
    """Recursive descent parser for .proto files."""

    def __init__(self, tokens: Iterable[ProtoToken], file_name: str = ""):
        self._tokens = iter(tokens)
        self._file_name = file_name
        self._current = next(self._tokens)
        self._syntax: Optional[ProtoSyntax] = None

    # -- public API --

    def parse(self) -> ProtoFile:
        """Parse the full token stream into a ProtoFile AST."""
        builder = ProtoFile.builder(self._file_name)
        scope: Dict[str, ProtoToken] = {}
        package_tok: Optional[ProtoToken] = None
        first_statement = True

        while not self._at_end():
            tok = self._peek()

            if self._accept(ProtoTokenType.SEMICOLON):
                continue

            word = self._keyword()
            if word == "syntax":
                if not first_statement:
                    raise self._syntax_error(
                        "'syntax' must be the first statement in the file", tok
                    )
                self._syntax = self._parse_syntax()
                builder.set_syntax(self._syntax)
            elif word == "package":
                if package_tok is not None:
                    raise self._syntax_error(
                        f"Duplicate package statement (first at "
                        f"{package_tok.line}:{package_tok.col})",
                        tok,
                    )
                package_tok = tok
                self._advance()
                builder.set_package_name(self._parse_dotted_name("package name"))
                self._expect(ProtoTokenType.SEMICOLON)
            elif word == "import":
                self._parse_import(builder)
            elif word == "option":
                builder.add_option(self._parse_option_statement())
            elif word in ("message", "enum"):
                element = self._parse_type()
                self._declare(scope, element.name, tok, "file")
                builder.add_type(element)
            elif word == "extend":
                builder.add_extend_declaration(self._parse_extend())
            elif word == "service":
                service = self._parse_service()
                self._declare(scope, service.name, tok, "file")
                builder.add_service(service)
            else:
                raise self._unexpected(tok, "top-level declaration")

            first_statement = False

        return builder.build()

    # -- file-level statements --

    def _parse_syntax(self) -> ProtoSyntax:
        """Parse: SYNTAX EQUALS STRING SEMICOLON"""
        self._expect_keyword("syntax")
        self._expect(ProtoTokenType.EQUALS)
        value_tok = self._peek()
        value = self._parse_string()
        self._expect(ProtoTokenType.SEMICOLON)
        try:
            return ProtoSyntax(value)
        except ValueError:
            raise self._validation_error(
                f"Unknown syntax {value!r}, expected 'proto2' or 'proto3'", value_tok
            ) from None

    def _parse_import(self, builder) -> None:
        """Parse: IMPORT [PUBLIC] STRING SEMICOLON"""
        self._expect_keyword("import")
        is_public = False
        if self._peek().type == ProtoTokenType.IDENT:
            if self._peek().value != "public":
                raise self._unexpected(self._peek(), "'public' or import path")
            self._advance()
            is_public = True
        path = self._parse_string()
        self._expect(ProtoTokenType.SEMICOLON)
        if is_public:
            builder.add_public_dependency(path)
        else:
            builder.add_dependency(path)

    # -- type declarations --

    def _parse_type(self):
        if self._peek().value == "message":
            return self._parse_message()
        return self._parse_enum()

    def _parse_message(self) -> MessageElement:
        """Parse: MESSAGE IDENT LBRACE body RBRACE"""
        keyword = self._expect_keyword("message")
        name_tok = self._expect(ProtoTokenType.IDENT, "message name")
        builder = MessageElement.builder(name_tok.value).set_documentation(
            keyword.documentation
        )
        where = f"message '{name_tok.value}'"
        scope: Dict[str, ProtoToken] = {}
        self._expect(ProtoTokenType.LBRACE)

        while not self._accept(ProtoTokenType.RBRACE):
            tok = self._peek()
            if self._accept(ProtoTokenType.SEMICOLON):
                continue

            word = self._keyword()
            if word in ("message", "enum"):
                nested = self._parse_type()
                self._declare(scope, nested.name, tok, where)
                builder.add_type(nested)
            elif word == "extend":
                builder.add_extend_declaration(self._parse_extend())
            elif word == "option":
                builder.add_option(self._parse_option_statement())
            elif word == "oneof":
                builder.add_oneof(self._parse_oneof(scope, where))
            elif word == "extensions":
                for extensions in self._parse_extensions():
                    builder.add_extensions(extensions)
            elif word == "reserved":
                builder.add_reserved(self._parse_reserved())
            else:
                member = self._parse_field(_MESSAGE)
                self._declare(scope, member.name, tok, where)
                builder.add_field(member)

        return builder.build()

    def _parse_enum(self) -> EnumElement:
        """Parse: ENUM IDENT LBRACE { constant | option | reserved } RBRACE"""
        keyword = self._expect_keyword("enum")
        name_tok = self._expect(ProtoTokenType.IDENT, "enum name")
        builder = EnumElement.builder(name_tok.value).set_documentation(
            keyword.documentation
        )
        where = f"enum '{name_tok.value}'"
        scope: Dict[str, ProtoToken] = {}
        self._expect(ProtoTokenType.LBRACE)

        while not self._accept(ProtoTokenType.RBRACE):
            tok = self._peek()
            if self._accept(ProtoTokenType.SEMICOLON):
                continue

            word = self._keyword()
            if word == "option":
                builder.add_option(self._parse_option_statement())
            elif word == "reserved":
                builder.add_reserved(self._parse_reserved())
            else:
                constant = self._parse_enum_constant()
                self._declare(scope, constant.name, tok, where)
                builder.add_constant(constant)

        return builder.build()

    def _parse_enum_constant(self) -> EnumConstantElement:
        """Parse: IDENT EQUALS INT [options] SEMICOLON"""
        name_tok = self._expect(ProtoTokenType.IDENT, "enum constant name")
        self._expect(ProtoTokenType.EQUALS)
        tag = self._parse_tag(f"enum constant '{name_tok.value}'")
        builder = EnumConstantElement.builder(name_tok.value).set_tag(tag)
        builder.set_documentation(name_tok.documentation)
        for option in self._parse_inline_options():
            builder.add_option(option)
        self._expect(ProtoTokenType.SEMICOLON)
        return builder.build()

    def _parse_oneof(self, scope: Dict[str, ProtoToken], where: str) -> OneofElement:
        """Parse: ONEOF IDENT LBRACE { field | option } RBRACE

        Oneof members share the enclosing message's namespace.
        """
        keyword = self._expect_keyword("oneof")
        name_tok = self._expect(ProtoTokenType.IDENT, "oneof name")
        self._declare(scope, name_tok.value, name_tok, where)
        builder = OneofElement.builder(name_tok.value).set_documentation(
            keyword.documentation
        )
        self._expect(ProtoTokenType.LBRACE)

        while not self._accept(ProtoTokenType.RBRACE):
            tok = self._peek()
            if self._accept(ProtoTokenType.SEMICOLON):
                continue
            if self._keyword() == "option":
                builder.add_option(self._parse_option_statement())
                continue
            member = self._parse_field(_ONEOF)
            self._declare(scope, member.name, tok, where)
            builder.add_field(member)

        return builder.build()

    def _parse_extend(self) -> ExtendElement:
        """Parse: EXTEND type_name LBRACE { field } RBRACE"""
        keyword = self._expect_keyword("extend")
        name = self._parse_dotted_name("extended type name", allow_leading_dot=True)
        builder = ExtendElement.builder(name).set_documentation(keyword.documentation)
        where = f"extend '{name}'"
        scope: Dict[str, ProtoToken] = {}
        self._expect(ProtoTokenType.LBRACE)

        while not self._accept(ProtoTokenType.RBRACE):
            tok = self._peek()
            if self._accept(ProtoTokenType.SEMICOLON):
                continue
            member = self._parse_field(_EXTEND)
            self._declare(scope, member.name, tok, where)
            builder.add_field(member)

        return builder.build()

    # -- fields --

    def _parse_field(self, context: str) -> FieldElement:
        """Parse: [label] type IDENT EQUALS INT [options] SEMICOLON"""
        first = self._peek()
        label = None
        if first.type == ProtoTokenType.IDENT and first.value in _LABELS:
            self._advance()
            label = _LABELS[first.value]

        type_name = self._parse_type_name()
        name_tok = self._expect(ProtoTokenType.IDENT, "field name")
        self._expect(ProtoTokenType.EQUALS)
        tag = self._parse_tag(f"field '{name_tok.value}'")
        options = self._parse_inline_options()
        self._expect(ProtoTokenType.SEMICOLON)

        self._check_label(label, type_name, name_tok.value, context, first)

        builder = (
            FieldElement.builder(name_tok.value)
            .set_label(label)
            .set_type(type_name)
            .set_tag(tag)
            .set_documentation(first.documentation)
        )
        for option in options:
            builder.add_option(option)
        return builder.build()

    def _check_label(
        self,
        label: Optional[FieldLabel],
        type_name: str,
        name: str,
        context: str,
        tok: ProtoToken,
    ) -> None:
        if label is not None:
            if context == _ONEOF:
                raise self._validation_error(
                    f"Field '{name}' in a oneof must not have a label", tok
                )
            if type_name.startswith("map<"):
                raise self._validation_error(
                    f"Map field '{name}' must not have a label", tok
                )
            if label == FieldLabel.REQUIRED and self._syntax == ProtoSyntax.PROTO3:
                raise self._validation_error(
                    f"Required field '{name}' is not allowed in proto3", tok
                )
        elif (
            self._syntax == ProtoSyntax.PROTO2
            and context != _ONEOF
            and not type_name.startswith("map<")
        ):
            raise ProtoSyntaxError(
                f"Field '{name}' requires a label (required, optional or repeated) in proto2",
                self._file_name,
                tok.line,
                tok.col,
                expected="field label",
                found=_describe(tok),
            )

    def _parse_type_name(self) -> str:
        """Parse a scalar, a dotted message/enum name or map<K, V>."""
        if self._peek().type == ProtoTokenType.DOT:
            return self._parse_dotted_name("field type", allow_leading_dot=True)

        first = self._expect(ProtoTokenType.IDENT, "field type")
        if first.value == "map" and self._accept(ProtoTokenType.LANGLE):
            key = self._parse_type_name()
            self._expect(ProtoTokenType.COMMA)
            value = self._parse_type_name()
            self._expect(ProtoTokenType.RANGLE)
            return f"map<{key}, {value}>"

        parts = [first.value]
        while self._accept(ProtoTokenType.DOT):
            parts.append(self._expect(ProtoTokenType.IDENT, "type name").value)
        return ".".join(parts)

    def _parse_tag(self, what: str) -> int:
        tok = self._expect(ProtoTokenType.INT, "tag number")
        tag = parse_int_literal(tok.value)
        if not is_valid_tag(tag):
            raise self._validation_error(f"Invalid tag {tag} for {what}", tok)
        return tag

    # -- ranges --

    def _parse_extensions(self) -> List[ExtensionsElement]:
        """Parse: EXTENSIONS range { COMMA range } SEMICOLON"""
        keyword = self._expect_keyword("extensions")
        documentation = keyword.documentation
        result: List[ExtensionsElement] = []

        while True:
            start_tok = self._peek()
            start, end = self._parse_range()
            try:
                extensions = (
                    ExtensionsElement.builder(start)
                    .set_end(start if end is None else end)
                    .set_documentation(documentation)
                    .build()
                )
            except ProtoValidationError as e:
                raise self._validation_error(e.reason, start_tok) from None
            result.append(extensions)
            documentation = ""
            if not self._accept(ProtoTokenType.COMMA):
                break

        self._expect(ProtoTokenType.SEMICOLON)
        return result

    def _parse_reserved(self) -> ReservedElement:
        """Parse: RESERVED (range | STRING) { COMMA (range | STRING) } SEMICOLON"""
        keyword = self._expect_keyword("reserved")
        builder = ReservedElement.builder().set_documentation(keyword.documentation)

        while True:
            if self._peek().type == ProtoTokenType.STRING_LIT:
                builder.add_value(self._parse_string())
            else:
                start, end = self._parse_range()
                if end is None:
                    builder.add_value(start)
                else:
                    builder.add_range(start, end)
            if not self._accept(ProtoTokenType.COMMA):
                break

        self._expect(ProtoTokenType.SEMICOLON)
        try:
            return builder.build()
        except ProtoValidationError as e:
            raise self._validation_error(e.reason, keyword) from None

    def _parse_range(self) -> Tuple[int, Optional[int]]:
        """Parse: INT [TO (INT | MAX)]; the end is None without TO."""
        start = parse_int_literal(self._expect(ProtoTokenType.INT, "range start").value)
        if self._keyword() != "to":
            return start, None
        self._advance()
        if self._keyword() == "max":
            self._advance()
            return start, MAX_TAG_VALUE
        end = parse_int_literal(self._expect(ProtoTokenType.INT, "range end").value)
        return start, end

    # -- services --

    def _parse_service(self) -> ServiceElement:
        """Parse: SERVICE IDENT LBRACE { rpc | option } RBRACE"""
        keyword = self._expect_keyword("service")
        name_tok = self._expect(ProtoTokenType.IDENT, "service name")
        builder = ServiceElement.builder(name_tok.value).set_documentation(
            keyword.documentation
        )
        where = f"service '{name_tok.value}'"
        scope: Dict[str, ProtoToken] = {}
        self._expect(ProtoTokenType.LBRACE)

        while not self._accept(ProtoTokenType.RBRACE):
            tok = self._peek()
            if self._accept(ProtoTokenType.SEMICOLON):
                continue
            word = self._keyword()
            if word == "option":
                builder.add_option(self._parse_option_statement())
            elif word == "rpc":
                rpc = self._parse_rpc()
                self._declare(scope, rpc.name, tok, where)
                builder.add_rpc(rpc)
            else:
                raise self._unexpected(tok, "'rpc' or 'option'")

        return builder.build()

    def _parse_rpc(self) -> RpcElement:
        """Parse: RPC IDENT ( [STREAM] type ) RETURNS ( [STREAM] type ) (; | { options })"""
        keyword = self._expect_keyword("rpc")
        name_tok = self._expect(ProtoTokenType.IDENT, "rpc name")
        builder = RpcElement.builder(name_tok.value).set_documentation(
            keyword.documentation
        )

        request_type, request_streaming = self._parse_rpc_type()
        builder.set_request_type(request_type, request_streaming)
        self._expect_keyword("returns")
        response_type, response_streaming = self._parse_rpc_type()
        builder.set_response_type(response_type, response_streaming)

        if self._accept(ProtoTokenType.LBRACE):
            while not self._accept(ProtoTokenType.RBRACE):
                if self._accept(ProtoTokenType.SEMICOLON):
                    continue
                if self._keyword() != "option":
                    raise self._unexpected(self._peek(), "'option' or '}'")
                builder.add_option(self._parse_option_statement())
            self._accept(ProtoTokenType.SEMICOLON)
        else:
            self._expect(ProtoTokenType.SEMICOLON)

        return builder.build()

    def _parse_rpc_type(self):
        self._expect(ProtoTokenType.LPAREN)
        streaming = False
        if self._keyword() == "stream":
            stream_tok = self._advance()
            if self._peek().type == ProtoTokenType.RPAREN:
                # A message type that happens to be called "stream".
                self._advance()
                return stream_tok.value, False
            streaming = True
        type_name = self._parse_type_name()
        self._expect(ProtoTokenType.RPAREN)
        return type_name, streaming

    # -- options --

    def _parse_option_statement(self) -> OptionElement:
        """Parse: OPTION option_name EQUALS value SEMICOLON"""
        self._expect_keyword("option")
        option = self._parse_option_assignment()
        self._expect(ProtoTokenType.SEMICOLON)
        return option

    def _parse_inline_options(self) -> List[OptionElement]:
        """Parse: [ LBRACKET option_name EQUALS value { COMMA ... } RBRACKET ]"""
        options: List[OptionElement] = []
        if not self._accept(ProtoTokenType.LBRACKET):
            return options
        while True:
            options.append(self._parse_option_assignment())
            if not self._accept(ProtoTokenType.COMMA):
                break
        self._expect(ProtoTokenType.RBRACKET)
        return options

    def _parse_option_assignment(self) -> OptionElement:
        name = self._parse_option_name()
        self._expect(ProtoTokenType.EQUALS)
        return OptionElement(name=name, value=self._parse_option_value())

    def _parse_option_name(self) -> str:
        """Parse a plain or parenthesized option name with dotted suffixes.

        The name is returned verbatim, e.g. ``(my.ext).field``.
        """
        parts = [self._parse_option_name_part()]
        while self._accept(ProtoTokenType.DOT):
            parts.append(self._parse_option_name_part())
        return ".".join(parts)

    def _parse_option_name_part(self) -> str:
        if self._accept(ProtoTokenType.LPAREN):
            inner = self._parse_dotted_name("option name", allow_leading_dot=True)
            self._expect(ProtoTokenType.RPAREN)
            return f"({inner})"
        return self._expect(ProtoTokenType.IDENT, "option name").value

    def _parse_option_value(self) -> OptionValue:
        """Parse a scalar, a [list] or an aggregate {...} / <...> value."""
        tok = self._peek()

        if tok.type == ProtoTokenType.STRING_LIT:
            return OptionValue.string(self._parse_string())
        if tok.type in (ProtoTokenType.INT, ProtoTokenType.FLOAT):
            self._advance()
            return OptionValue.number(tok.value)
        if tok.type == ProtoTokenType.IDENT:
            self._advance()
            if tok.value in ("true", "false"):
                return OptionValue.boolean(tok.value == "true")
            return OptionValue.enum(tok.value)
        if tok.type == ProtoTokenType.LBRACKET:
            return self._parse_option_list()
        if tok.type in (ProtoTokenType.LBRACE, ProtoTokenType.LANGLE):
            return self._parse_option_aggregate()
        raise self._unexpected(tok, "option value")

    def _parse_option_list(self) -> OptionValue:
        self._expect(ProtoTokenType.LBRACKET)
        items: List[OptionValue] = []
        if not self._accept(ProtoTokenType.RBRACKET):
            while True:
                items.append(self._parse_option_value())
                if not self._accept(ProtoTokenType.COMMA):
                    break
            self._expect(ProtoTokenType.RBRACKET)
        return OptionValue(OptionKind.LIST, tuple(items))

    def _parse_option_aggregate(self) -> OptionValue:
        """Parse: { name [:] value [,|;] ... }, ':' optional before {, < or [."""
        open_tok = self._advance()
        close = (
            ProtoTokenType.RBRACE
            if open_tok.type == ProtoTokenType.LBRACE
            else ProtoTokenType.RANGLE
        )
        entries: List[OptionElement] = []

        while not self._accept(close):
            name = self._parse_aggregate_entry_name()
            if not self._accept(ProtoTokenType.COLON) and self._peek().type not in (
                ProtoTokenType.LBRACE,
                ProtoTokenType.LANGLE,
                ProtoTokenType.LBRACKET,
            ):
                raise self._unexpected(self._peek(), "':'")
            entries.append(OptionElement(name=name, value=self._parse_option_value()))
            if not self._accept(ProtoTokenType.COMMA):
                self._accept(ProtoTokenType.SEMICOLON)

        return OptionValue(OptionKind.MAP, tuple(entries))

    def _parse_aggregate_entry_name(self) -> str:
        if self._accept(ProtoTokenType.LBRACKET):
            inner = self._parse_dotted_name("extension name")
            self._expect(ProtoTokenType.RBRACKET)
            return f"[{inner}]"
        return self._expect(ProtoTokenType.IDENT, "field name").value

    # -- shared productions --

    def _parse_dotted_name(self, what: str, allow_leading_dot: bool = False) -> str:
        parts: List[str] = []
        if allow_leading_dot and self._accept(ProtoTokenType.DOT):
            parts.append("")
        parts.append(self._expect(ProtoTokenType.IDENT, what).value)
        while self._accept(ProtoTokenType.DOT):
            parts.append(self._expect(ProtoTokenType.IDENT, what).value)
        return ".".join(parts)

    def _parse_string(self) -> str:
        """Parse one or more adjacent string literals."""
        value = self._expect(ProtoTokenType.STRING_LIT, "string").value
        while self._peek().type == ProtoTokenType.STRING_LIT:
            value += self._advance().value
        return value

    def _declare(
        self, scope: Dict[str, ProtoToken], name: str, tok: ProtoToken, where: str
    ) -> None:
        previous = scope.get(name)
        if previous is not None:
            raise self._validation_error(
                f"Duplicate name '{name}' in {where}: declared at "
                f"{tok.line}:{tok.col} and previously at "
                f"{previous.line}:{previous.col}",
                tok,
            )
        scope[name] = tok

    # -- token helpers --

    def _peek(self) -> ProtoToken:
        return self._current

    def _advance(self) -> ProtoToken:
        tok = self._current
        if tok.type != ProtoTokenType.EOF:
            self._current = next(self._tokens)
        return tok

    def _accept(self, expected: ProtoTokenType) -> Optional[ProtoToken]:
        if self._current.type == expected:
            return self._advance()
        return None

    def _expect(self, expected: ProtoTokenType, what: Optional[str] = None) -> ProtoToken:
        tok = self._peek()
        if tok.type != expected:
            raise self._unexpected(tok, what or _TOKEN_NAMES[expected])
        return self._advance()

    def _expect_keyword(self, word: str) -> ProtoToken:
        tok = self._peek()
        if tok.type != ProtoTokenType.IDENT or tok.value != word:
            raise self._unexpected(tok, f"'{word}'")
        return self._advance()

    def _keyword(self) -> Optional[str]:
        tok = self._current
        return tok.value if tok.type == ProtoTokenType.IDENT else None

    def _at_end(self) -> bool:
        return self._current.type == ProtoTokenType.EOF

    # -- errors --

    def _unexpected(self, tok: ProtoToken, expected: str) -> ProtoSyntaxError:
        found = _describe(tok)
        return ProtoSyntaxError(
            f"Expected {expected}, found {found}",
            self._file_name,
            tok.line,
            tok.col,
            expected=expected,
            found=found,
        )

    def _syntax_error(self, message: str, tok: ProtoToken) -> ProtoSyntaxError:
        return ProtoSyntaxError(
            message, self._file_name, tok.line, tok.col, found=_describe(tok)
        )

    def _validation_error(self, message: str, tok: ProtoToken) -> ProtoValidationError:
        return ProtoValidationError(message, self._file_name, tok.line, tok.col)
