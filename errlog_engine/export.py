"""
Export projector.

Maps records to flat string rows for a chosen set of columns and renders
them as CSV.
"""

import csv
import io
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from .fields import (
    FieldKind,
    field_kind,
    field_label,
    field_value,
    format_timestamp,
    last_path_segment,
)
from .models import FieldId, LogRecord


def export_cell(record: LogRecord, field_id: FieldId) -> str:
    """Render one cell with the column's export transform applied."""
    value = field_value(record, field_id)
    if value is None:
        return ''

    kind = field_kind(field_id)
    if kind == FieldKind.TIMESTAMP and isinstance(value, datetime):
        return format_timestamp(value)
    if kind == FieldKind.PATH:
        return last_path_segment(str(value))
    return str(value)


def project(
    records: Iterable[LogRecord],
    visible_fields: Sequence[FieldId],
) -> List[List[str]]:
    """Project records onto the visible columns, one row per record."""
    return [
        [export_cell(record, field_id) for field_id in visible_fields]
        for record in records
    ]


def header_row(visible_fields: Sequence[FieldId]) -> List[str]:
    return [field_label(field_id) for field_id in visible_fields]


def render_csv(rows: Iterable[Sequence[str]], header: Optional[Sequence[str]] = None) -> str:
    """Render string rows as CSV text.

    Cells containing the delimiter, a quote or a line break are quoted and
    embedded quotes doubled.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator='\r\n')
    if header is not None:
        writer.writerow(header)
    writer.writerows(rows)
    return buffer.getvalue()


def to_csv(
    records: Iterable[LogRecord],
    visible_fields: Sequence[FieldId],
    include_header: bool = True,
) -> str:
    header = header_row(visible_fields) if include_header else None
    return render_csv(project(records, visible_fields), header)
