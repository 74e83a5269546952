"""
Sort and pagination stages.
"""

import locale
from datetime import datetime
from typing import Any, Callable, Iterable, List, Sequence

from .fields import FieldKind, field_kind, field_value
from .models import (
    DEFAULT_SORT,
    LogRecord,
    SortDirection,
    SortSpec,
    invalid_argument,
)


def _sort_key(kind: FieldKind) -> Callable[[Any], Any]:
    if kind == FieldKind.TIMESTAMP:
        return lambda value: value.timestamp() if isinstance(value, datetime) else float(value)
    if kind == FieldKind.NUMBER:
        return lambda value: value
    return lambda value: locale.strxfrm(str(value))


def resolve_sort(sort: SortSpec) -> SortSpec:
    """Fill in the default ordering (newest first) when unspecified."""
    if sort.field is None or sort.direction is None:
        return DEFAULT_SORT
    return sort


def sort_records(records: Iterable[LogRecord], sort: SortSpec) -> List[LogRecord]:
    """Return a new list ordered by one field.

    Records missing the sort field are placed after every other record in
    both directions. Ties keep their original relative order.

    Args:
        records: Records to order
        sort: Field and direction; unspecified means newest first

    Returns:
        Sorted copy of the records
    """
    spec = resolve_sort(sort)
    key = _sort_key(field_kind(spec.field))

    present = []
    missing = []
    for record in records:
        if field_value(record, spec.field) is None:
            missing.append(record)
        else:
            present.append(record)

    ordered = sorted(
        present,
        key=lambda record: key(field_value(record, spec.field)),
        reverse=spec.direction == SortDirection.DESCENDING,
    )
    return ordered + missing


def paginate(records: Sequence[LogRecord], page: int, page_size: int) -> List[LogRecord]:
    """Slice one 1-indexed page out of the records.

    Pages past the end are empty.

    Raises:
        QueryError: If page or page_size is not positive
    """
    if page_size <= 0:
        raise invalid_argument(f"pageSize must be positive, got {page_size}")
    if page <= 0:
        raise invalid_argument(f"page must be positive, got {page}")

    start = (page - 1) * page_size
    return list(records[start:start + page_size])


def page_count(total: int, page_size: int) -> int:
    if page_size <= 0:
        raise invalid_argument(f"pageSize must be positive, got {page_size}")
    return (total + page_size - 1) // page_size
