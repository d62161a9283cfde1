"""
PostgreSQL record (composite) text format.
"""
import re
from enum import Enum
from typing import Any, List, Optional, Sequence

from typecache.models.sa_types import enum_label

_NEEDS_QUOTES = re.compile(r'[(),"\\\s]')


def _field_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "t" if value else "f"
    if isinstance(value, Enum):
        return enum_label(value)
    return str(value)


def format_record(values: Sequence[Any]) -> str:
    """Render field values as a record literal, e.g. `(1,"a b",)`."""
    parts: List[str] = []
    for value in values:
        field_text = _field_text(value)
        if field_text is None:
            parts.append("")  # NULL
        elif field_text == "" or _NEEDS_QUOTES.search(field_text):
            escaped = field_text.replace("\\", "\\\\").replace('"', '\\"')
            parts.append(f'"{escaped}"')
        else:
            parts.append(field_text)
    return "(" + ",".join(parts) + ")"


def parse_record(literal: str) -> List[Optional[str]]:
    """
    Parse a record literal into its field texts.

    An unquoted empty field is NULL; a quoted empty field is the empty string.
    Inside quotes both `\\x` and `""` escape a character.
    """
    literal = literal.strip()
    if len(literal) < 2 or literal[0] != "(" or literal[-1] != ")":
        raise ValueError(f"Malformed record literal: {literal!r}")

    body = literal[1:-1]
    fields: List[Optional[str]] = []
    current = ""
    was_quoted = False
    in_quote = False
    i = 0
    while i < len(body):
        ch = body[i]
        if in_quote:
            if ch == "\\" and i + 1 < len(body):
                current += body[i + 1]
                i += 1
            elif ch == '"':
                if i + 1 < len(body) and body[i + 1] == '"':
                    current += '"'
                    i += 1
                else:
                    in_quote = False
            else:
                current += ch
        elif ch == '"':
            in_quote = True
            was_quoted = True
        elif ch == ",":
            fields.append(current if (current or was_quoted) else None)
            current = ""
            was_quoted = False
        else:
            current += ch
        i += 1

    if in_quote:
        raise ValueError(f"Unterminated quote in record literal: {literal!r}")
    fields.append(current if (current or was_quoted) else None)
    return fields
