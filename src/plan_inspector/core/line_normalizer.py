"""Physical-line handling: container prefixes, duplicates and JSON decoding."""

import json
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .constants import CONTAINER_PREFIX_RE


class SeenLines:
    """
    Lines already decoded during one parse invocation.

    ``capacity`` of 0 keeps every line; otherwise the oldest line is
    forgotten once the window is full.
    """

    def __init__(self, capacity: int = 0):
        self.capacity = max(0, int(capacity or 0))
        self._lines: "OrderedDict[str, None]" = OrderedDict()

    def __contains__(self, line: str) -> bool:
        return line in self._lines

    def __len__(self) -> int:
        return len(self._lines)

    def add(self, line: str) -> None:
        if line in self._lines:
            return
        self._lines[line] = None
        if self.capacity and len(self._lines) > self.capacity:
            self._lines.popitem(last=False)


@dataclass
class NormalizedLine:
    raw: str
    content: str
    prefix_ts: str = ""
    record: Optional[Dict[str, Any]] = None

    @property
    def is_record(self) -> bool:
        return self.record is not None


def split_container_prefix(line: str):
    """Return (timestamp prefix, remainder); the prefix is '' when absent."""
    match = CONTAINER_PREFIX_RE.match(line)
    if match:
        return match.group(1), match.group(2)
    return "", line


def decode_record(text: str) -> Optional[Dict[str, Any]]:
    """Decode a JSON object; anything else (arrays, scalars, junk) is None."""
    try:
        value = json.loads(text)
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


class LineNormalizer:
    """Turns physical lines into decoded records or free-text lines."""

    def __init__(self, seen: Optional[SeenLines] = None):
        self.seen = seen if seen is not None else SeenLines()

    def is_duplicate(self, line: str) -> bool:
        return line in self.seen

    def normalize(self, line: str) -> NormalizedLine:
        """
        Strip the container prefix and try to decode the remainder.

        Successfully decoded lines are remembered for duplicate detection.
        When the record lacks ``ts`` the container prefix timestamp is used.
        """
        prefix_ts, content = split_container_prefix(line)
        record = decode_record(content)
        normalized = NormalizedLine(raw=line, content=content, prefix_ts=prefix_ts)
        if record is None:
            return normalized

        if not record.get("ts") and prefix_ts:
            record["ts"] = prefix_ts
        self.seen.add(line)
        normalized.record = record
        return normalized
