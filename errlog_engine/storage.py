"""
Thread-safe, read-only record source.

Holds the log record collection the engine queries. Each query takes a
snapshot (an immutable tuple), so concurrent requests never observe a
collection being swapped underneath them.

Records can be loaded from a JSON array or NDJSON file of objects with
the wire field ids as keys, e.g.
{
    "id": string,
    "log_date_time": ISO8601 datetime,
    "host_name": string,
    "port_number": int,
    "error_number": int,
    ...
}
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .fields import record_from_dict
from .models import LogRecord

logger = logging.getLogger(__name__)


def load_record_dicts(input_file: str | Path) -> List[Dict[str, Any]]:
    """Load record objects from an NDJSON or JSON array file.

    Args:
        input_file: Path to the file

    Returns:
        List of record dictionaries

    Raises:
        ValueError: If the file is missing or its format is invalid
    """
    path = Path(input_file)
    if not path.exists():
        raise ValueError(f"Input file not found: {input_file}")

    with open(path, 'r') as f:
        content = f.read().strip()

    if not content:
        return []

    if content.startswith('['):
        try:
            items = json.loads(content)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON array: {e}")
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                raise ValueError(f"Item {index}: Record must be a JSON object")
        return items

    items = []
    for line_num, line in enumerate(content.split('\n'), 1):
        line = line.strip()
        if not line:
            continue
        try:
            item = json.loads(line)
        except json.JSONDecodeError as e:
            raise ValueError(f"Line {line_num}: Invalid JSON: {e}")
        if not isinstance(item, dict):
            raise ValueError(f"Line {line_num}: Record must be a JSON object")
        items.append(item)
    return items


class LogStore:
    """Thread-safe holder of a log record collection."""

    def __init__(self, records: Optional[Iterable[LogRecord]] = None):
        """Initialize the store.

        Args:
            records: Initial collection
        """
        self._lock = threading.RLock()
        self._records: Tuple[LogRecord, ...] = tuple(records or ())

    @classmethod
    def from_file(cls, input_file: str | Path) -> 'LogStore':
        """Create a store from a JSON array or NDJSON file."""
        records = [record_from_dict(item) for item in load_record_dicts(input_file)]
        logger.info(f"Loaded {len(records)} records from {input_file}")
        return cls(records)

    def snapshot(self) -> Tuple[LogRecord, ...]:
        """Return the current collection as an immutable view."""
        with self._lock:
            return self._records

    def replace(self, records: Iterable[LogRecord]) -> int:
        """Swap in a new collection; in-flight snapshots are unaffected.

        Returns:
            Size of the new collection
        """
        new_records = tuple(records)
        with self._lock:
            self._records = new_records
        logger.info(f"Record collection replaced ({len(new_records)} records)")
        return len(new_records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
