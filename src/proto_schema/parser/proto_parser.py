from __future__ import annotations

import logging

from .proto_ast import ProtoFile
from .proto_ast_parser import ProtoParser
from .proto_tokenizer import tokenize_proto

logger = logging.getLogger(__name__)


def parse_proto(file_name: str, text: str) -> ProtoFile:
    """Parse .proto source text into a ProtoFile.

    ``file_name`` is only used for the tree and for error locations; nothing
    is read from disk. Raises a ProtoParseError subclass on the first error.
    """
    proto_file = ProtoParser(tokenize_proto(text, file_name), file_name).parse()
    logger.debug(
        "Parsed %s: %d type(s), %d service(s), %d extend(s)",
        file_name,
        len(proto_file.types),
        len(proto_file.services),
        len(proto_file.extend_declarations),
    )
    return proto_file
