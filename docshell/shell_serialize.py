from __future__ import annotations

import json
import re
from typing import Any, Optional
import collections.abc

import yaml


# --------------------------
# Helpers
# --------------------------

def _norm_text(data: bytes | bytearray | str, *, encoding: Optional[str] = None) -> str:
    if isinstance(data, (bytes, bytearray)):
        enc = encoding or 'utf-8'
        try:
            return data.decode(enc, errors='replace')
        except LookupError:
            return data.decode('utf-8', errors='replace')
    if isinstance(data, str):
        return data
    return str(data)


def _encoding_from_content_type(content_type: Optional[str]) -> Optional[str]:
    if not content_type:
        return None
    m = re.search(r'charset\s*=\s*([^\s;]+)', content_type, re.IGNORECASE)
    if m:
        return m.group(1).strip('"').strip("'")
    return None


def to_wire(obj: Any) -> Any:
    """
    Normalize a script value into plain JSON-compatible structures.
    Handles become their descriptors, tuples become lists, mappings become dicts.
    """
    describe = getattr(type(obj), "descriptor", None)
    if callable(describe):
        return describe(obj)
    if isinstance(obj, (list, tuple)):
        return [to_wire(x) for x in obj]
    if isinstance(obj, collections.abc.Mapping):
        return {str(k): to_wire(v) for k, v in obj.items()}
    return obj


def detect_format(content_type: Optional[str] = None, data_hint: Optional[str] = None) -> Optional[str]:
    """
    Returns a canonical format name among: 'json', 'yaml'.
    Uses Content-Type first; falls back to simple data sniffing if provided.
    """
    ct = (content_type or "").lower()
    if 'json' in ct:
        return 'json'
    if 'yaml' in ct:
        return 'yaml'

    if data_hint is not None:
        s = data_hint.lstrip()
        if s.startswith('{') or s.startswith('['):
            return 'json'
    return None


# --------------------------
# Public API
# --------------------------

def deserialize(data: bytes | bytearray | str,
                *,
                content_type: Optional[str] = None,
                fmt: Optional[str] = None) -> Any:
    """
    Convert wire data (bytes/string) to native Python structures.
    Supported fmt: 'json', 'yaml'. If fmt is None, uses content_type, then sniffing.
    Unknown formats come back as text.
    """
    enc = _encoding_from_content_type(content_type)
    text = _norm_text(data, encoding=enc)
    f = (fmt or detect_format(content_type, text))
    if f == 'json':
        try:
            return json.loads(text)
        except ValueError:
            # YAML is a superset; tolerate mislabeled payloads
            try:
                return yaml.safe_load(text)
            except yaml.YAMLError:
                return text
    if f == 'yaml':
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError:
            return text
    return text


def serialize(value: Any,
              *,
              fmt: str = 'json',
              pretty: bool = True) -> str:
    """
    Convert a native value into a textual representation.
    - fmt: 'json' | 'yaml'
    """
    f = (fmt or '').lower()
    built = to_wire(value)
    if f == 'json':
        return json.dumps(built, ensure_ascii=False, indent=2 if pretty else None)
    if f == 'yaml':
        return yaml.safe_dump(built, sort_keys=False)
    raise ValueError(f"Unsupported serialization format: {fmt!r}")


def stringify(value: Any) -> str:
    """Compact single-line JSON text for a value; repr() when it is not JSON-shaped."""
    try:
        return json.dumps(to_wire(value), ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError):
        return repr(value)


__all__ = [
    "deserialize",
    "serialize",
    "detect_format",
    "to_wire",
    "stringify",
]
