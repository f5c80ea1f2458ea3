"""
Record types and the canonical JSON encoding used on the wire.
"""

import json
from typing import Any, Mapping, TypeAlias, Union

RecordValue: TypeAlias = Union[str, int, float, bool, None]

Record: TypeAlias = Mapping[str, RecordValue]


def dumps(obj: Any) -> str:
    """Serialize to compact JSON, keeping non-ASCII characters as-is."""
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"))


def record_size(record: Record) -> int:
    """Size in bytes of the record's UTF-8 encoded JSON."""
    return len(dumps(record).encode("utf-8"))
