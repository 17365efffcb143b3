"""Field and enum-constant tag bounds."""

from __future__ import annotations

MIN_TAG_VALUE = 1
MAX_TAG_VALUE = (1 << 29) - 1  # 536,870,911

# Reserved for the protobuf implementation itself.
RESERVED_TAG_VALUE_START = 19000
RESERVED_TAG_VALUE_END = 19999


def is_valid_tag(value: int) -> bool:
    """True if ``value`` may be used as a field or enum-constant tag."""
    if value < MIN_TAG_VALUE or value > MAX_TAG_VALUE:
        return False
    return not RESERVED_TAG_VALUE_START <= value <= RESERVED_TAG_VALUE_END
