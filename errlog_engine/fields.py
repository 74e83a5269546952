"""
Typed field accessor table for log records.

Every column of a LogRecord is reachable by its FieldId through a table
built once at import time, so filters, sorts, groupings and exports can
address any column without reflecting on the record at runtime.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .models import FieldId, LogRecord, invalid_argument


DISPLAY_TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'


class FieldKind(str, Enum):
    TIMESTAMP = 'timestamp'
    NUMBER = 'number'
    TEXT = 'text'
    PATH = 'path'


@dataclass(frozen=True)
class FieldSpec:
    """Accessor entry for one column.

    Attributes:
        field_id: Column identifier
        kind: Value type, drives comparison and rendering
        label: Column header used by the dashboard and CSV exports
        getter: Reads the typed value from a record
    """
    field_id: FieldId
    kind: FieldKind
    label: str
    getter: Callable[[LogRecord], Any]


FIELD_SPECS: Dict[FieldId, FieldSpec] = {
    spec.field_id: spec
    for spec in (
        FieldSpec(FieldId.LOG_DATE_TIME, FieldKind.TIMESTAMP, 'Timestamp', lambda r: r.log_date_time),
        FieldSpec(FieldId.HOST_NAME, FieldKind.TEXT, 'Host', lambda r: r.host_name),
        FieldSpec(FieldId.REPOSITORY_PATH, FieldKind.PATH, 'Model Name', lambda r: r.repository_path),
        FieldSpec(FieldId.PORT_NUMBER, FieldKind.NUMBER, 'Port', lambda r: r.port_number),
        FieldSpec(FieldId.VERSION_NUMBER, FieldKind.TEXT, 'AS Version', lambda r: r.version_number),
        FieldSpec(FieldId.AS_SERVER_MODE, FieldKind.TEXT, 'Server Mode', lambda r: r.as_server_mode),
        FieldSpec(FieldId.AS_START_DATE_TIME, FieldKind.TIMESTAMP, 'Server Start Time', lambda r: r.as_start_date_time),
        FieldSpec(FieldId.AS_SERVER_CONFIG, FieldKind.TEXT, 'Server Config', lambda r: r.as_server_config),
        FieldSpec(FieldId.USER_ID, FieldKind.TEXT, 'User', lambda r: r.user_id),
        FieldSpec(FieldId.REPORT_ID_NAME, FieldKind.TEXT, 'Report Name', lambda r: r.report_id_name),
        FieldSpec(FieldId.ERROR_NUMBER, FieldKind.NUMBER, 'Error Code', lambda r: r.error_number),
        FieldSpec(FieldId.XQL_QUERY_ID, FieldKind.TEXT, 'Query ID', lambda r: r.xql_query_id),
        FieldSpec(FieldId.LOG_MESSAGE, FieldKind.TEXT, 'Message', lambda r: r.log_message),
    )
}

ALL_FIELDS: List[FieldId] = list(FIELD_SPECS)


def parse_field_id(value: Any) -> FieldId:
    """Resolve a wire field id.

    Raises:
        QueryError: If the id does not name a known column
    """
    if isinstance(value, FieldId):
        return value
    try:
        return FieldId(str(value))
    except ValueError:
        raise invalid_argument(f"Unknown field: {value!r}")


def field_kind(field_id: FieldId) -> FieldKind:
    return FIELD_SPECS[field_id].kind


def field_label(field_id: FieldId) -> str:
    return FIELD_SPECS[field_id].label


def field_value(record: LogRecord, field_id: FieldId) -> Any:
    """Return the typed value of a column, or None when absent."""
    return FIELD_SPECS[field_id].getter(record)


def format_timestamp(value: datetime) -> str:
    """Render an instant the way the dashboard displays it (UTC)."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(DISPLAY_TIMESTAMP_FORMAT)


def field_text(record: LogRecord, field_id: FieldId) -> Optional[str]:
    """Return the canonical string form of a column.

    This is the representation filters match against and groups and
    breakdowns are keyed by. Absent values stay None.
    """
    value = field_value(record, field_id)
    if value is None:
        return None
    if isinstance(value, datetime):
        return format_timestamp(value)
    return str(value)


def last_path_segment(path: str) -> str:
    """Shorten a hierarchical path to its final segment."""
    index = path.rfind('/')
    if index == -1:
        return path
    return path[index + 1:]


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a record timestamp into a timezone-aware datetime.

    Naive values are taken as UTC. Unparseable values become None.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value, tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            return None
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_int(value: Any) -> Optional[int]:
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _parse_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def record_from_dict(data: Dict[str, Any]) -> LogRecord:
    """Build a LogRecord from a wire-shaped dictionary.

    Unknown keys are ignored; malformed typed values become None.
    """
    values: Dict[str, Any] = {}
    for field_id, spec in FIELD_SPECS.items():
        raw = data.get(field_id.value)
        if spec.kind == FieldKind.TIMESTAMP:
            values[field_id.value] = parse_timestamp(raw)
        elif spec.kind == FieldKind.NUMBER:
            values[field_id.value] = _parse_int(raw)
        else:
            values[field_id.value] = _parse_text(raw)
    values['id'] = _parse_text(data.get('id'))
    return LogRecord(**values)


def record_to_dict(record: LogRecord) -> Dict[str, Any]:
    """Serialize a LogRecord to its wire shape (ISO-8601 timestamps)."""
    data: Dict[str, Any] = {}
    if record.id is not None:
        data['id'] = record.id
    for field_id in ALL_FIELDS:
        value = field_value(record, field_id)
        if isinstance(value, datetime):
            value = value.isoformat()
        data[field_id.value] = value
    return data
