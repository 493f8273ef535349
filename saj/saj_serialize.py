from __future__ import annotations

import json
from typing import Any, Optional

import yaml

from saj.saj_printer import Printer


def detect_format(text: str) -> Optional[str]:
    """'json' when the text opens a JSON container, 'yaml' for other non-empty text."""
    s = text.lstrip()
    if s.startswith('{') or s.startswith('['):
        return 'json'
    if s:
        return 'yaml'
    return None


def deserialize(data: bytes | bytearray | str, *, fmt: Optional[str] = None) -> Any:
    """
    Convert program/config text to native Python structures.
    Supported fmt: 'json', 'yaml'. If fmt is None, the text is sniffed.
    Raises ValueError when the text does not parse.
    """
    text = data.decode('utf-8', errors='replace') if isinstance(data, (bytes, bytearray)) else str(data)
    if (fmt or detect_format(text)) == 'json':
        try:
            return json.loads(text)
        except ValueError:
            # YAML is a superset of JSON; accept JSON-ish text with trailing commas etc.
            pass
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValueError(f"could not parse program text: {e}") from e


def serialize(value: Any, *, fmt: str = 'json', pretty: bool = True) -> str:
    """
    Convert a SAJ value (nodes and closures included) into text.
    - fmt: 'json' | 'yaml'
    """
    f = (fmt or '').lower()
    printer = Printer()
    built = printer.to_builtin(value) if not hasattr(value, 'tag') else printer.to_program(value)
    if f == 'json':
        return json.dumps(built, ensure_ascii=False, indent=2 if pretty else None)
    if f == 'yaml':
        return yaml.safe_dump(built, sort_keys=False)
    raise ValueError(f"Unsupported serialization format: {fmt!r}")


__all__ = [
    "deserialize",
    "serialize",
    "detect_format",
]
