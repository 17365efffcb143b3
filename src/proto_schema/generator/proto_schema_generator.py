from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING

from jinja2 import Environment, FileSystemLoader

if TYPE_CHECKING:
    from proto_schema.parser.proto_ast import ProtoFile

# Line and paragraph separators are escaped so literals stay on one line.
_LINE_SEPARATORS = {"\u2028", "\u2029"}


def quote_proto_string(value: str) -> str:
    """Render ``value`` as a double-quoted .proto string literal."""
    out = []
    for ch in value:
        code = ord(ch)
        if ch == "\\":
            out.append("\\\\")
        elif ch == '"':
            out.append('\\"')
        elif ch == "\n":
            out.append("\\n")
        elif ch == "\r":
            out.append("\\r")
        elif ch == "\t":
            out.append("\\t")
        elif code < 0x20 or code == 0x7F:
            out.append("\\%03o" % code)
        elif 0x80 <= code <= 0x9F or ch in _LINE_SEPARATORS:
            out.append("\\u%04x" % code)
        else:
            out.append(ch)
    return '"' + "".join(out) + '"'


@lru_cache(maxsize=1)
def _get_template_env() -> Environment:
    template_dir = Path(__file__).parent.parent / "templates"
    return Environment(
        loader=FileSystemLoader(str(template_dir)),
        keep_trailing_newline=True,
        trim_blocks=True,
    )


def generate_proto_schema(proto_file: ProtoFile) -> str:
    """Render a ProtoFile as canonical .proto source.

    Sections always appear in the same order (imports, options, types,
    extends, services), each preceded by one blank line when non-empty.
    """
    env = _get_template_env()
    template = env.get_template("proto_file.proto.j2")

    return template.render(
        file_name=proto_file.file_name,
        syntax=proto_file.syntax.value if proto_file.syntax else None,
        package_name=proto_file.package_name,
        dependencies=[quote_proto_string(d) for d in proto_file.dependencies],
        public_dependencies=[
            quote_proto_string(d) for d in proto_file.public_dependencies
        ],
        options=[option.to_schema_declaration() for option in proto_file.options],
        types=[element.to_schema() for element in proto_file.types],
        extend_declarations=[
            extend.to_schema() for extend in proto_file.extend_declarations
        ],
        services=[service.to_schema() for service in proto_file.services],
    )
