"""AST node definitions for protobuf (.proto) schema files.

Nodes are immutable and compare structurally. Each node is created through
its builder (``MessageElement.builder("Name")...build()``) or its constructor;
both paths run the same checks. Every node renders itself back to canonical
schema text with ``to_schema()``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from enum import Enum, auto
from typing import Any, Iterable, List, Optional, Tuple, Union

from proto_schema.generator.proto_schema_generator import (
    generate_proto_schema,
    quote_proto_string,
)

from .proto_errors import ProtoValidationError
from .proto_tags import MAX_TAG_VALUE, MIN_TAG_VALUE, is_valid_tag

INDENT = "  "

_IDENT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_NUMBER_TEXT_RE = re.compile(
    r"-?(?:0[xX][0-9A-Fa-f]+|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)"
)
# Aggregate entries are a field name or a bracketed extension name.
_AGGREGATE_NAME_RE = re.compile(
    r"[A-Za-z_][A-Za-z0-9_]*|\[[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*\]"
)


class FieldLabel(Enum):
    REQUIRED = "required"
    OPTIONAL = "optional"
    REPEATED = "repeated"


class ProtoSyntax(Enum):
    PROTO2 = "proto2"
    PROTO3 = "proto3"


class OptionKind(Enum):
    STRING = auto()
    BOOLEAN = auto()
    NUMBER = auto()
    ENUM = auto()
    LIST = auto()
    MAP = auto()


# -- rendering helpers --


def _render_documentation(documentation: str) -> str:
    if not documentation:
        return ""
    return "".join(
        f"// {line}\n" if line else "//\n" for line in documentation.split("\n")
    )


def _indent(text: str) -> str:
    # Lines end at "\n" only; string literals may hold other separators.
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return "".join(f"{INDENT}{line}\n" if line else "\n" for line in lines)


def _render_block(documentation: str, header: str, groups: List[List[str]]) -> str:
    """Render ``header { ... }`` with one blank line between member groups."""
    parts = [_render_documentation(documentation), header, " {"]
    groups = [group for group in groups if group]
    for group in groups:
        parts.append("\n")
        parts.extend(_indent(member) for member in group)
    parts.append("}\n")
    return "".join(parts)


def _render_inline_options(options: Tuple[OptionElement, ...]) -> str:
    if not options:
        return ""
    return " [" + ", ".join(option.to_schema() for option in options) + "]"


def _render_range_end(value: int) -> str:
    return "max" if value == MAX_TAG_VALUE else str(value)


# -- validation helpers --


def _require_name(name: str, what: str) -> None:
    if not isinstance(name, str) or not name:
        raise ProtoValidationError(f"{what} name must be a non-empty string")


def _require_tag(tag: int, what: str) -> None:
    if isinstance(tag, bool) or not isinstance(tag, int) or not is_valid_tag(tag):
        raise ProtoValidationError(f"Invalid tag {tag!r} for {what}")


def _check_unique(names: Iterable[str], where: str) -> None:
    seen = set()
    for name in names:
        if name in seen:
            raise ProtoValidationError(f"Duplicate name '{name}' in {where}")
        seen.add(name)


def _normalize_documentation(node: Any) -> None:
    """Strip each line and drop blank edge lines, as the tokenizer does."""
    lines = [line.strip() for line in node.documentation.split("\n")]
    while lines and not lines[0]:
        lines.pop(0)
    while lines and not lines[-1]:
        lines.pop()
    object.__setattr__(node, "documentation", "\n".join(lines))


def _freeze(node: Any, *names: str) -> None:
    """Store sequence attributes of a frozen dataclass as tuples."""
    for name in names:
        object.__setattr__(node, name, tuple(getattr(node, name)))


def _coerce_label(label: Union[FieldLabel, str, None]) -> Optional[FieldLabel]:
    if label is None or isinstance(label, FieldLabel):
        return label
    try:
        return FieldLabel(label)
    except ValueError:
        raise ProtoValidationError(f"Unknown field label {label!r}") from None


def _coerce_syntax(syntax: Union[ProtoSyntax, str, None]) -> Optional[ProtoSyntax]:
    if syntax is None or isinstance(syntax, ProtoSyntax):
        return syntax
    try:
        return ProtoSyntax(syntax)
    except ValueError:
        raise ProtoValidationError(
            f"Unknown syntax {syntax!r}, expected 'proto2' or 'proto3'"
        ) from None


# -- options --


@dataclass(frozen=True)
class OptionValue:
    """Tagged option value; ``value`` depends on ``kind``.

    STRING: str, BOOLEAN: bool, NUMBER: literal text, ENUM: identifier,
    LIST: tuple of OptionValue, MAP: tuple of OptionElement entries.
    """

    kind: OptionKind
    value: Any

    def __post_init__(self):
        kind, value = self.kind, self.value
        if kind in (OptionKind.LIST, OptionKind.MAP) and isinstance(value, list):
            _freeze(self, "value")
            value = self.value

        if kind is OptionKind.STRING:
            valid = isinstance(value, str)
        elif kind is OptionKind.BOOLEAN:
            valid = isinstance(value, bool)
        elif kind is OptionKind.NUMBER:
            valid = isinstance(value, str) and bool(_NUMBER_TEXT_RE.fullmatch(value))
        elif kind is OptionKind.ENUM:
            valid = isinstance(value, str) and bool(_IDENT_RE.fullmatch(value))
        elif kind is OptionKind.LIST:
            valid = isinstance(value, tuple) and all(
                isinstance(item, OptionValue) for item in value
            )
        elif kind is OptionKind.MAP:
            valid = isinstance(value, tuple) and all(
                isinstance(entry, OptionElement)
                and bool(_AGGREGATE_NAME_RE.fullmatch(entry.name))
                for entry in value
            )
        else:
            valid = False
        if not valid:
            raise ProtoValidationError(f"Invalid {kind} option value {value!r}")

    @classmethod
    def string(cls, value: str) -> OptionValue:
        return cls(OptionKind.STRING, value)

    @classmethod
    def boolean(cls, value: bool) -> OptionValue:
        return cls(OptionKind.BOOLEAN, value)

    @classmethod
    def number(cls, value: Union[int, float, str]) -> OptionValue:
        return cls(OptionKind.NUMBER, value if isinstance(value, str) else str(value))

    @classmethod
    def enum(cls, value: str) -> OptionValue:
        return cls(OptionKind.ENUM, value)

    @classmethod
    def of(cls, value: Any) -> OptionValue:
        """Infer the kind from a plain Python value."""
        if isinstance(value, OptionValue):
            return value
        if isinstance(value, bool):
            return cls.boolean(value)
        if isinstance(value, (int, float)):
            return cls.number(value)
        if isinstance(value, str):
            return cls.string(value)
        if isinstance(value, (list, tuple)):
            return cls(OptionKind.LIST, tuple(cls.of(item) for item in value))
        if isinstance(value, dict):
            return cls(
                OptionKind.MAP,
                tuple(OptionElement.create(k, v) for k, v in value.items()),
            )
        raise ProtoValidationError(f"Unsupported option value {value!r}")

    def to_schema(self) -> str:
        kind = self.kind
        if kind is OptionKind.STRING:
            return quote_proto_string(self.value)
        if kind is OptionKind.BOOLEAN:
            return "true" if self.value else "false"
        if kind in (OptionKind.NUMBER, OptionKind.ENUM):
            return self.value
        if kind is OptionKind.LIST:
            return "[" + ", ".join(item.to_schema() for item in self.value) + "]"
        if not self.value:
            return "{}"
        entries = ", ".join(
            f"{entry.name}: {entry.value.to_schema()}" for entry in self.value
        )
        return "{ " + entries + " }"


@dataclass(frozen=True)
class OptionElement:
    """``name = value``; ``name`` is kept verbatim, e.g. ``(my.ext).field``."""

    name: str
    value: OptionValue

    def __post_init__(self):
        _require_name(self.name, "Option")
        if not isinstance(self.value, OptionValue):
            raise ProtoValidationError(
                f"Option '{self.name}' value must be an OptionValue"
            )

    @classmethod
    def create(cls, name: str, value: Any, is_parenthesized: bool = False) -> OptionElement:
        if is_parenthesized and not name.startswith("("):
            name = f"({name})"
        return cls(name=name, value=OptionValue.of(value))

    @staticmethod
    def builder(name: str = "") -> OptionElementBuilder:
        return OptionElementBuilder(name)

    @staticmethod
    def find_by_name(
        options: Iterable[OptionElement], name: str
    ) -> Optional[OptionElement]:
        for option in options:
            if option.name == name:
                return option
        return None

    @property
    def is_parenthesized(self) -> bool:
        return self.name.startswith("(")

    def to_schema(self) -> str:
        return f"{self.name} = {self.value.to_schema()}"

    def to_schema_declaration(self) -> str:
        return f"option {self.to_schema()};\n"


class OptionElementBuilder:
    def __init__(self, name: str = ""):
        self._name = name
        self._value: Optional[OptionValue] = None
        self._is_parenthesized = False

    def set_name(self, name: str) -> OptionElementBuilder:
        self._name = name
        return self

    def set_value(self, value: Any) -> OptionElementBuilder:
        self._value = OptionValue.of(value)
        return self

    def set_parenthesized(self, is_parenthesized: bool) -> OptionElementBuilder:
        self._is_parenthesized = is_parenthesized
        return self

    def build(self) -> OptionElement:
        if self._value is None:
            raise ProtoValidationError(f"Option '{self._name}' has no value")
        return OptionElement.create(self._name, self._value, self._is_parenthesized)


# -- fields --


@dataclass(frozen=True)
class FieldElement:
    """``[label] type name = tag [options];``; ``label`` is None when absent."""

    label: Optional[FieldLabel]
    type_name: str
    name: str
    tag: int
    documentation: str = ""
    options: Tuple[OptionElement, ...] = ()

    def __post_init__(self):
        _normalize_documentation(self)
        _freeze(self, "options")
        _require_name(self.name, "Field")
        _require_name(self.type_name, f"Field '{self.name}' type")
        _require_tag(self.tag, f"field '{self.name}'")
        if self.label is not None and not isinstance(self.label, FieldLabel):
            raise ProtoValidationError(f"Invalid label for field '{self.name}'")

    @staticmethod
    def builder(name: str = "") -> FieldElementBuilder:
        return FieldElementBuilder(name)

    @property
    def is_deprecated(self) -> bool:
        return self._flag("deprecated")

    @property
    def is_packed(self) -> bool:
        return self._flag("packed")

    @property
    def default(self) -> Optional[OptionValue]:
        option = OptionElement.find_by_name(self.options, "default")
        return option.value if option else None

    def _flag(self, name: str) -> bool:
        option = OptionElement.find_by_name(self.options, name)
        return option is not None and option.value == OptionValue.boolean(True)

    def to_schema(self) -> str:
        label = f"{self.label.value} " if self.label else ""
        return (
            _render_documentation(self.documentation)
            + f"{label}{self.type_name} {self.name} = {self.tag}"
            + _render_inline_options(self.options)
            + ";\n"
        )


class FieldElementBuilder:
    def __init__(self, name: str = ""):
        self._name = name
        self._label: Optional[FieldLabel] = None
        self._type_name = ""
        self._tag: Optional[int] = None
        self._documentation = ""
        self._options: List[OptionElement] = []

    def set_name(self, name: str) -> FieldElementBuilder:
        self._name = name
        return self

    def set_label(self, label: Union[FieldLabel, str, None]) -> FieldElementBuilder:
        self._label = _coerce_label(label)
        return self

    def set_type(self, type_name: str) -> FieldElementBuilder:
        self._type_name = type_name
        return self

    def set_tag(self, tag: int) -> FieldElementBuilder:
        self._tag = tag
        return self

    def set_documentation(self, documentation: str) -> FieldElementBuilder:
        self._documentation = documentation
        return self

    def add_option(self, option: OptionElement) -> FieldElementBuilder:
        self._options.append(option)
        return self

    def build(self) -> FieldElement:
        if self._tag is None:
            raise ProtoValidationError(f"Field '{self._name}' has no tag")
        return FieldElement(
            label=self._label,
            type_name=self._type_name,
            name=self._name,
            tag=self._tag,
            documentation=self._documentation,
            options=tuple(self._options),
        )


@dataclass(frozen=True)
class OneofElement:
    name: str
    documentation: str = ""
    fields: Tuple[FieldElement, ...] = ()
    options: Tuple[OptionElement, ...] = ()

    def __post_init__(self):
        _normalize_documentation(self)
        _freeze(self, "fields", "options")
        _require_name(self.name, "Oneof")
        for member in self.fields:
            if member.label is not None:
                raise ProtoValidationError(
                    f"Field '{member.name}' in oneof '{self.name}' must not have a label"
                )

    @staticmethod
    def builder(name: str = "") -> OneofElementBuilder:
        return OneofElementBuilder(name)

    def to_schema(self) -> str:
        return _render_block(
            self.documentation,
            f"oneof {self.name}",
            [
                [option.to_schema_declaration() for option in self.options],
                [member.to_schema() for member in self.fields],
            ],
        )


class OneofElementBuilder:
    def __init__(self, name: str = ""):
        self._name = name
        self._documentation = ""
        self._fields: List[FieldElement] = []
        self._options: List[OptionElement] = []

    def set_documentation(self, documentation: str) -> OneofElementBuilder:
        self._documentation = documentation
        return self

    def add_field(self, field_element: FieldElement) -> OneofElementBuilder:
        self._fields.append(field_element)
        return self

    def add_option(self, option: OptionElement) -> OneofElementBuilder:
        self._options.append(option)
        return self

    def build(self) -> OneofElement:
        _check_unique((f.name for f in self._fields), f"oneof '{self._name}'")
        return OneofElement(
            name=self._name,
            documentation=self._documentation,
            fields=tuple(self._fields),
            options=tuple(self._options),
        )


# -- ranges --


@dataclass(frozen=True)
class ExtensionsElement:
    """One ``extensions start to end;`` range (inclusive)."""

    start: int
    end: int
    documentation: str = ""

    def __post_init__(self):
        _normalize_documentation(self)
        for value in (self.start, self.end):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ProtoValidationError(f"Invalid extension range bound {value!r}")
        if not MIN_TAG_VALUE <= self.start <= self.end <= MAX_TAG_VALUE:
            raise ProtoValidationError(
                f"Invalid extension range {self.start} to {self.end}"
            )

    @staticmethod
    def builder(start: Optional[int] = None) -> ExtensionsElementBuilder:
        return ExtensionsElementBuilder(start)

    def to_schema(self) -> str:
        text = f"extensions {self.start}"
        if self.end != self.start:
            text += f" to {_render_range_end(self.end)}"
        return _render_documentation(self.documentation) + text + ";\n"


class ExtensionsElementBuilder:
    def __init__(self, start: Optional[int] = None):
        self._start = start
        self._end: Optional[int] = None
        self._documentation = ""

    def set_start(self, start: int) -> ExtensionsElementBuilder:
        self._start = start
        return self

    def set_end(self, end: int) -> ExtensionsElementBuilder:
        self._end = end
        return self

    def set_documentation(self, documentation: str) -> ExtensionsElementBuilder:
        self._documentation = documentation
        return self

    def build(self) -> ExtensionsElement:
        if self._start is None:
            raise ProtoValidationError("Extension range has no start")
        return ExtensionsElement(
            start=self._start,
            end=self._start if self._end is None else self._end,
            documentation=self._documentation,
        )


ReservedValue = Union[int, str, Tuple[int, int]]


@dataclass(frozen=True)
class ReservedElement:
    """``reserved`` tags, ``(start, end)`` tag ranges and field names."""

    values: Tuple[ReservedValue, ...]
    documentation: str = ""

    def __post_init__(self):
        _normalize_documentation(self)
        _freeze(self, "values")
        if not self.values:
            raise ProtoValidationError("Reserved statement has no values")
        for value in self.values:
            if isinstance(value, str):
                valid = bool(value)
            elif isinstance(value, tuple):
                valid = len(value) == 2 and value[0] <= value[1]
            else:
                valid = isinstance(value, int) and not isinstance(value, bool)
            if not valid:
                raise ProtoValidationError(f"Invalid reserved value {value!r}")

    @staticmethod
    def builder() -> ReservedElementBuilder:
        return ReservedElementBuilder()

    def to_schema(self) -> str:
        rendered = []
        for value in self.values:
            if isinstance(value, str):
                rendered.append(quote_proto_string(value))
            elif isinstance(value, tuple):
                rendered.append(f"{value[0]} to {_render_range_end(value[1])}")
            else:
                rendered.append(str(value))
        return (
            _render_documentation(self.documentation)
            + "reserved "
            + ", ".join(rendered)
            + ";\n"
        )


class ReservedElementBuilder:
    def __init__(self):
        self._values: List[ReservedValue] = []
        self._documentation = ""

    def add_value(self, value: ReservedValue) -> ReservedElementBuilder:
        self._values.append(value)
        return self

    def add_range(self, start: int, end: int) -> ReservedElementBuilder:
        self._values.append((start, end))
        return self

    def set_documentation(self, documentation: str) -> ReservedElementBuilder:
        self._documentation = documentation
        return self

    def build(self) -> ReservedElement:
        return ReservedElement(
            values=tuple(self._values), documentation=self._documentation
        )


# -- enums --


@dataclass(frozen=True)
class EnumConstantElement:
    name: str
    tag: int
    documentation: str = ""
    options: Tuple[OptionElement, ...] = ()

    def __post_init__(self):
        _normalize_documentation(self)
        _freeze(self, "options")
        _require_name(self.name, "Enum constant")
        _require_tag(self.tag, f"enum constant '{self.name}'")

    @staticmethod
    def builder(name: str = "") -> EnumConstantElementBuilder:
        return EnumConstantElementBuilder(name)

    def to_schema(self) -> str:
        return (
            _render_documentation(self.documentation)
            + f"{self.name} = {self.tag}"
            + _render_inline_options(self.options)
            + ";\n"
        )


class EnumConstantElementBuilder:
    def __init__(self, name: str = ""):
        self._name = name
        self._tag: Optional[int] = None
        self._documentation = ""
        self._options: List[OptionElement] = []

    def set_tag(self, tag: int) -> EnumConstantElementBuilder:
        self._tag = tag
        return self

    def set_documentation(self, documentation: str) -> EnumConstantElementBuilder:
        self._documentation = documentation
        return self

    def add_option(self, option: OptionElement) -> EnumConstantElementBuilder:
        self._options.append(option)
        return self

    def build(self) -> EnumConstantElement:
        if self._tag is None:
            raise ProtoValidationError(f"Enum constant '{self._name}' has no tag")
        return EnumConstantElement(
            name=self._name,
            tag=self._tag,
            documentation=self._documentation,
            options=tuple(self._options),
        )


@dataclass(frozen=True)
class EnumElement:
    name: str
    qualified_name: str = ""
    documentation: str = ""
    constants: Tuple[EnumConstantElement, ...] = ()
    options: Tuple[OptionElement, ...] = ()
    reserved: Tuple[ReservedElement, ...] = ()

    def __post_init__(self):
        _normalize_documentation(self)
        _freeze(self, "constants", "options", "reserved")
        _require_name(self.name, "Enum")
        if not self.qualified_name:
            object.__setattr__(self, "qualified_name", self.name)

    @staticmethod
    def builder(name: str = "") -> EnumElementBuilder:
        return EnumElementBuilder(name)

    def to_schema(self) -> str:
        return _render_block(
            self.documentation,
            f"enum {self.name}",
            [
                [option.to_schema_declaration() for option in self.options],
                [constant.to_schema() for constant in self.constants],
                [reserved.to_schema() for reserved in self.reserved],
            ],
        )


class EnumElementBuilder:
    def __init__(self, name: str = ""):
        self._name = name
        self._qualified_name = ""
        self._documentation = ""
        self._constants: List[EnumConstantElement] = []
        self._options: List[OptionElement] = []
        self._reserved: List[ReservedElement] = []

    def set_qualified_name(self, qualified_name: str) -> EnumElementBuilder:
        self._qualified_name = qualified_name
        return self

    def set_documentation(self, documentation: str) -> EnumElementBuilder:
        self._documentation = documentation
        return self

    def add_constant(self, constant: EnumConstantElement) -> EnumElementBuilder:
        self._constants.append(constant)
        return self

    def add_option(self, option: OptionElement) -> EnumElementBuilder:
        self._options.append(option)
        return self

    def add_reserved(self, reserved: ReservedElement) -> EnumElementBuilder:
        self._reserved.append(reserved)
        return self

    def build(self) -> EnumElement:
        _check_unique((c.name for c in self._constants), f"enum '{self._name}'")
        return EnumElement(
            name=self._name,
            qualified_name=self._qualified_name,
            documentation=self._documentation,
            constants=tuple(self._constants),
            options=tuple(self._options),
            reserved=tuple(self._reserved),
        )


# -- messages and extends --


@dataclass(frozen=True)
class ExtendElement:
    name: str
    qualified_name: str = ""
    documentation: str = ""
    fields: Tuple[FieldElement, ...] = ()

    def __post_init__(self):
        _normalize_documentation(self)
        _freeze(self, "fields")
        _require_name(self.name, "Extend")
        if not self.qualified_name:
            object.__setattr__(self, "qualified_name", self.name.lstrip("."))

    @staticmethod
    def builder(name: str = "") -> ExtendElementBuilder:
        return ExtendElementBuilder(name)

    def to_schema(self) -> str:
        return _render_block(
            self.documentation,
            f"extend {self.name}",
            [[member.to_schema() for member in self.fields]],
        )


class ExtendElementBuilder:
    def __init__(self, name: str = ""):
        self._name = name
        self._qualified_name = ""
        self._documentation = ""
        self._fields: List[FieldElement] = []

    def set_qualified_name(self, qualified_name: str) -> ExtendElementBuilder:
        self._qualified_name = qualified_name
        return self

    def set_documentation(self, documentation: str) -> ExtendElementBuilder:
        self._documentation = documentation
        return self

    def add_field(self, field_element: FieldElement) -> ExtendElementBuilder:
        self._fields.append(field_element)
        return self

    def build(self) -> ExtendElement:
        _check_unique((f.name for f in self._fields), f"extend '{self._name}'")
        return ExtendElement(
            name=self._name,
            qualified_name=self._qualified_name,
            documentation=self._documentation,
            fields=tuple(self._fields),
        )


@dataclass(frozen=True)
class MessageElement:
    name: str
    qualified_name: str = ""
    documentation: str = ""
    fields: Tuple[FieldElement, ...] = ()
    oneofs: Tuple[OneofElement, ...] = ()
    nested_types: Tuple[TypeElement, ...] = ()
    extensions: Tuple[ExtensionsElement, ...] = ()
    reserved: Tuple[ReservedElement, ...] = ()
    options: Tuple[OptionElement, ...] = ()
    extend_declarations: Tuple[ExtendElement, ...] = ()

    def __post_init__(self):
        _normalize_documentation(self)
        _freeze(
            self,
            "fields",
            "oneofs",
            "nested_types",
            "extensions",
            "reserved",
            "options",
            "extend_declarations",
        )
        _require_name(self.name, "Message")
        if not self.qualified_name:
            object.__setattr__(self, "qualified_name", self.name)

    @staticmethod
    def builder(name: str = "") -> MessageElementBuilder:
        return MessageElementBuilder(name)

    def to_schema(self) -> str:
        return _render_block(
            self.documentation,
            f"message {self.name}",
            [
                [option.to_schema_declaration() for option in self.options],
                [member.to_schema() for member in self.fields],
                [oneof.to_schema() for oneof in self.oneofs],
                [extensions.to_schema() for extensions in self.extensions],
                [reserved.to_schema() for reserved in self.reserved],
                [nested.to_schema() for nested in self.nested_types],
                [extend.to_schema() for extend in self.extend_declarations],
            ],
        )


class MessageElementBuilder:
    def __init__(self, name: str = ""):
        self._name = name
        self._qualified_name = ""
        self._documentation = ""
        self._fields: List[FieldElement] = []
        self._oneofs: List[OneofElement] = []
        self._nested_types: List[TypeElement] = []
        self._extensions: List[ExtensionsElement] = []
        self._reserved: List[ReservedElement] = []
        self._options: List[OptionElement] = []
        self._extend_declarations: List[ExtendElement] = []

    def set_qualified_name(self, qualified_name: str) -> MessageElementBuilder:
        self._qualified_name = qualified_name
        return self

    def set_documentation(self, documentation: str) -> MessageElementBuilder:
        self._documentation = documentation
        return self

    def add_field(self, field_element: FieldElement) -> MessageElementBuilder:
        self._fields.append(field_element)
        return self

    def add_oneof(self, oneof: OneofElement) -> MessageElementBuilder:
        self._oneofs.append(oneof)
        return self

    def add_type(self, element: TypeElement) -> MessageElementBuilder:
        self._nested_types.append(element)
        return self

    def add_extensions(self, extensions: ExtensionsElement) -> MessageElementBuilder:
        self._extensions.append(extensions)
        return self

    def add_reserved(self, reserved: ReservedElement) -> MessageElementBuilder:
        self._reserved.append(reserved)
        return self

    def add_option(self, option: OptionElement) -> MessageElementBuilder:
        self._options.append(option)
        return self

    def add_extend_declaration(self, extend: ExtendElement) -> MessageElementBuilder:
        self._extend_declarations.append(extend)
        return self

    def build(self) -> MessageElement:
        names = [f.name for f in self._fields]
        for oneof in self._oneofs:
            names.append(oneof.name)
            names.extend(f.name for f in oneof.fields)
        names.extend(t.name for t in self._nested_types)
        _check_unique(names, f"message '{self._name}'")
        return MessageElement(
            name=self._name,
            qualified_name=self._qualified_name,
            documentation=self._documentation,
            fields=tuple(self._fields),
            oneofs=tuple(self._oneofs),
            nested_types=tuple(self._nested_types),
            extensions=tuple(self._extensions),
            reserved=tuple(self._reserved),
            options=tuple(self._options),
            extend_declarations=tuple(self._extend_declarations),
        )


TypeElement = Union[MessageElement, EnumElement]


# -- services --


@dataclass(frozen=True)
class RpcElement:
    name: str
    request_type: str
    response_type: str
    request_streaming: bool = False
    response_streaming: bool = False
    documentation: str = ""
    options: Tuple[OptionElement, ...] = ()

    def __post_init__(self):
        _normalize_documentation(self)
        _freeze(self, "options")
        _require_name(self.name, "Rpc")
        _require_name(self.request_type, f"Rpc '{self.name}' request type")
        _require_name(self.response_type, f"Rpc '{self.name}' response type")

    @staticmethod
    def builder(name: str = "") -> RpcElementBuilder:
        return RpcElementBuilder(name)

    def to_schema(self) -> str:
        request = ("stream " if self.request_streaming else "") + self.request_type
        response = ("stream " if self.response_streaming else "") + self.response_type
        header = f"rpc {self.name} ({request}) returns ({response})"
        if not self.options:
            return _render_documentation(self.documentation) + header + ";\n"
        return _render_block(
            self.documentation,
            header,
            [[option.to_schema_declaration() for option in self.options]],
        )


class RpcElementBuilder:
    def __init__(self, name: str = ""):
        self._name = name
        self._request_type = ""
        self._response_type = ""
        self._request_streaming = False
        self._response_streaming = False
        self._documentation = ""
        self._options: List[OptionElement] = []

    def set_request_type(self, request_type: str, streaming: bool = False) -> RpcElementBuilder:
        self._request_type = request_type
        self._request_streaming = streaming
        return self

    def set_response_type(self, response_type: str, streaming: bool = False) -> RpcElementBuilder:
        self._response_type = response_type
        self._response_streaming = streaming
        return self

    def set_documentation(self, documentation: str) -> RpcElementBuilder:
        self._documentation = documentation
        return self

    def add_option(self, option: OptionElement) -> RpcElementBuilder:
        self._options.append(option)
        return self

    def build(self) -> RpcElement:
        return RpcElement(
            name=self._name,
            request_type=self._request_type,
            response_type=self._response_type,
            request_streaming=self._request_streaming,
            response_streaming=self._response_streaming,
            documentation=self._documentation,
            options=tuple(self._options),
        )


@dataclass(frozen=True)
class ServiceElement:
    name: str
    qualified_name: str = ""
    documentation: str = ""
    rpcs: Tuple[RpcElement, ...] = ()
    options: Tuple[OptionElement, ...] = ()

    def __post_init__(self):
        _normalize_documentation(self)
        _freeze(self, "rpcs", "options")
        _require_name(self.name, "Service")
        if not self.qualified_name:
            object.__setattr__(self, "qualified_name", self.name)

    @staticmethod
    def builder(name: str = "") -> ServiceElementBuilder:
        return ServiceElementBuilder(name)

    def to_schema(self) -> str:
        return _render_block(
            self.documentation,
            f"service {self.name}",
            [
                [option.to_schema_declaration() for option in self.options],
                [rpc.to_schema() for rpc in self.rpcs],
            ],
        )


class ServiceElementBuilder:
    def __init__(self, name: str = ""):
        self._name = name
        self._qualified_name = ""
        self._documentation = ""
        self._rpcs: List[RpcElement] = []
        self._options: List[OptionElement] = []

    def set_qualified_name(self, qualified_name: str) -> ServiceElementBuilder:
        self._qualified_name = qualified_name
        return self

    def set_documentation(self, documentation: str) -> ServiceElementBuilder:
        self._documentation = documentation
        return self

    def add_rpc(self, rpc: RpcElement) -> ServiceElementBuilder:
        self._rpcs.append(rpc)
        return self

    def add_option(self, option: OptionElement) -> ServiceElementBuilder:
        self._options.append(option)
        return self

    def build(self) -> ServiceElement:
        _check_unique((r.name for r in self._rpcs), f"service '{self._name}'")
        return ServiceElement(
            name=self._name,
            qualified_name=self._qualified_name,
            documentation=self._documentation,
            rpcs=tuple(self._rpcs),
            options=tuple(self._options),
        )


# -- file --


@dataclass(frozen=True)
class ProtoFile:
    """Top-level parsed representation of a .proto file."""

    file_name: str
    syntax: Optional[ProtoSyntax] = None
    package_name: Optional[str] = None
    dependencies: Tuple[str, ...] = ()
    public_dependencies: Tuple[str, ...] = ()
    options: Tuple[OptionElement, ...] = ()
    types: Tuple[TypeElement, ...] = ()
    services: Tuple[ServiceElement, ...] = ()
    extend_declarations: Tuple[ExtendElement, ...] = ()

    def __post_init__(self):
        _freeze(
            self,
            "dependencies",
            "public_dependencies",
            "options",
            "types",
            "services",
            "extend_declarations",
        )
        _require_name(self.file_name, "File")
        object.__setattr__(self, "syntax", _coerce_syntax(self.syntax))

    @staticmethod
    def builder(file_name: str) -> ProtoFileBuilder:
        return ProtoFileBuilder(file_name)

    def to_schema(self) -> str:
        return generate_proto_schema(self)


class ProtoFileBuilder:
    def __init__(self, file_name: str):
        self._file_name = file_name
        self._syntax: Optional[ProtoSyntax] = None
        self._package_name: Optional[str] = None
        self._dependencies: List[str] = []
        self._public_dependencies: List[str] = []
        self._options: List[OptionElement] = []
        self._types: List[TypeElement] = []
        self._services: List[ServiceElement] = []
        self._extend_declarations: List[ExtendElement] = []

    def set_syntax(self, syntax: Union[ProtoSyntax, str, None]) -> ProtoFileBuilder:
        self._syntax = _coerce_syntax(syntax)
        return self

    def set_package_name(self, package_name: Optional[str]) -> ProtoFileBuilder:
        self._package_name = package_name
        return self

    def add_dependency(self, dependency: str) -> ProtoFileBuilder:
        self._dependencies.append(dependency)
        return self

    def add_public_dependency(self, dependency: str) -> ProtoFileBuilder:
        self._public_dependencies.append(dependency)
        return self

    def add_option(self, option: OptionElement) -> ProtoFileBuilder:
        self._options.append(option)
        return self

    def add_type(self, element: TypeElement) -> ProtoFileBuilder:
        self._types.append(element)
        return self

    def add_service(self, service: ServiceElement) -> ProtoFileBuilder:
        self._services.append(service)
        return self

    def add_extend_declaration(self, extend: ExtendElement) -> ProtoFileBuilder:
        self._extend_declarations.append(extend)
        return self

    def build(self) -> ProtoFile:
        if self._package_name is not None:
            _require_name(self._package_name, "Package")
        _check_unique(
            [t.name for t in self._types] + [s.name for s in self._services],
            f"file '{self._file_name}'",
        )
        prefix = f"{self._package_name}." if self._package_name else ""
        return ProtoFile(
            file_name=self._file_name,
            syntax=self._syntax,
            package_name=self._package_name,
            dependencies=tuple(self._dependencies),
            public_dependencies=tuple(self._public_dependencies),
            options=tuple(self._options),
            types=tuple(_qualify_type(t, prefix) for t in self._types),
            services=tuple(
                replace(s, qualified_name=prefix + s.name) for s in self._services
            ),
            extend_declarations=tuple(
                _qualify_extend(e, prefix) for e in self._extend_declarations
            ),
        )


def _qualify_type(element: TypeElement, prefix: str) -> TypeElement:
    qualified_name = prefix + element.name
    if isinstance(element, EnumElement):
        return replace(element, qualified_name=qualified_name)
    return replace(
        element,
        qualified_name=qualified_name,
        nested_types=tuple(
            _qualify_type(t, qualified_name + ".") for t in element.nested_types
        ),
        extend_declarations=tuple(
            _qualify_extend(e, prefix) for e in element.extend_declarations
        ),
    )


def _qualify_extend(extend: ExtendElement, prefix: str) -> ExtendElement:
    if extend.name.startswith("."):
        qualified_name = extend.name[1:]
    elif "." in extend.name:
        qualified_name = extend.name
    else:
        qualified_name = prefix + extend.name
    return replace(extend, qualified_name=qualified_name)
