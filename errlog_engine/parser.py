"""
Request parser.

Turns a wire-shaped query (a JSON-decoded dictionary) into a validated
QueryRequest: resolves relative intervals and calendar dates into a
concrete TimeWindow, and parses filters, sort, grouping and pagination.
Every problem is reported as QueryError(InvalidArgument) before any
pipeline stage runs.
"""

import re
from datetime import datetime, time, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from dateutil.relativedelta import relativedelta

from .fields import parse_field_id
from .filters import make_condition
from .models import (
    FieldId,
    FilterCondition,
    FilterOperator,
    Pagination,
    QueryRequest,
    SortDirection,
    SortSpec,
    TimeWindow,
    invalid_argument,
)

Clock = Callable[[], datetime]

INTERVAL_PATTERN = re.compile(
    r'^\s*(?P<value>\d+)\s*(?P<unit>minutes?|mins?|hours?|days?|weeks?|months?)\s*$',
    re.IGNORECASE,
)

DATE_ONLY_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')

TIME_PRESETS: Dict[str, Optional[str]] = {
    'none': None,
    '1h': '1 hour',
    '4h': '4 hours',
    '8h': '8 hours',
    '1d': '1 day',
    '7d': '7 days',
    '15d': '15 days',
    '1m': '1 month',
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def preset_interval(key: str) -> Optional[str]:
    """Resolve a dashboard time preset to its interval string."""
    if key not in TIME_PRESETS:
        raise invalid_argument(f"Unknown time preset: {key!r}")
    return TIME_PRESETS[key]


def parse_interval(interval: str) -> relativedelta:
    """Parse an interval such as '7 days' or '1 month'.

    Raises:
        QueryError: If the interval is not '<n> <unit>' with a known unit
    """
    match = INTERVAL_PATTERN.match(str(interval))
    if not match:
        raise invalid_argument(f"Invalid interval: {interval!r}")

    value = int(match.group('value'))
    unit = match.group('unit').lower()

    if unit.startswith('min'):
        return relativedelta(minutes=value)
    if unit.startswith('hour'):
        return relativedelta(hours=value)
    if unit.startswith('day'):
        return relativedelta(days=value)
    if unit.startswith('week'):
        return relativedelta(weeks=value)
    return relativedelta(months=value)


def parse_instant(value: Any, end_of_day: bool = False) -> datetime:
    """Parse an ISO-8601 instant or calendar date into an aware datetime.

    A calendar date resolves to the start of that day, or to its last
    microsecond when end_of_day is set. Naive instants are taken as UTC.

    Raises:
        QueryError: If the value cannot be parsed
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if DATE_ONLY_PATTERN.match(text):
            try:
                day = datetime.strptime(text, '%Y-%m-%d').date()
            except ValueError:
                raise invalid_argument(f"Invalid date: {value!r}")
            moment = time.max if end_of_day else time.min
            return datetime.combine(day, moment, tzinfo=timezone.utc)
        try:
            parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
        except ValueError:
            raise invalid_argument(f"Invalid timestamp: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def resolve_window(
    time_window: Optional[Mapping[str, Any]],
    interval: Optional[str],
    clock: Clock = utc_now,
) -> Optional[TimeWindow]:
    """Resolve the two alternative window notations.

    Returns:
        The window, or None when neither notation was supplied

    Raises:
        QueryError: If both are supplied or the window is malformed
    """
    if time_window and interval:
        raise invalid_argument("Specify either interval or timeWindow, not both")

    if interval:
        now = clock()
        return TimeWindow(start=now - parse_interval(interval), end=now)

    if not time_window:
        return None

    if not isinstance(time_window, Mapping):
        raise invalid_argument("timeWindow must be an object")
    if not time_window.get('from'):
        raise invalid_argument("timeWindow.from is required")

    start = parse_instant(time_window['from'])
    if time_window.get('to'):
        end = parse_instant(time_window['to'], end_of_day=True)
    else:
        end = clock()

    if start > end:
        raise invalid_argument("timeWindow.from must not be after timeWindow.to")
    return TimeWindow(start=start, end=end)


def _parse_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise invalid_argument(f"{name} must be an integer")
    try:
        return int(value)
    except ValueError:
        raise invalid_argument(f"{name} must be an integer")


def parse_pagination(data: Optional[Mapping[str, Any]], default_page_size: int) -> Pagination:
    if not data:
        return Pagination(page=1, page_size=default_page_size)

    page = _parse_int(data.get('page', 1), 'pagination.page')
    page_size = _parse_int(data.get('pageSize', default_page_size), 'pagination.pageSize')

    if page_size <= 0:
        raise invalid_argument(f"pageSize must be positive, got {page_size}")
    if page <= 0:
        raise invalid_argument(f"page must be positive, got {page}")
    return Pagination(page=page, page_size=page_size)


def parse_sort(data: Optional[Mapping[str, Any]]) -> SortSpec:
    """Parse a sort descriptor; 'column' is accepted as an alias of 'field'."""
    if not data:
        return SortSpec()

    raw_field = data.get('field', data.get('column'))
    raw_direction = data.get('direction')

    field_id = parse_field_id(raw_field) if raw_field else None
    direction = None
    if raw_direction:
        try:
            direction = SortDirection(raw_direction)
        except ValueError:
            raise invalid_argument(f"Invalid sort direction: {raw_direction!r}")

    return SortSpec(field=field_id, direction=direction)


def parse_condition(raw: Any) -> FilterCondition:
    """Parse one filter condition.

    Accepts the operator form {operator, values}, a bare list of terms or a
    single string; the latter two mean IN.
    """
    if raw is None:
        return FilterCondition(operator=FilterOperator.IN)
    if isinstance(raw, str):
        return make_condition(FilterOperator.IN, [raw])
    if isinstance(raw, (list, tuple)):
        return make_condition(FilterOperator.IN, [str(v) for v in raw])
    if not isinstance(raw, Mapping):
        raise invalid_argument(f"Invalid filter condition: {raw!r}")

    try:
        operator = FilterOperator(raw.get('operator') or FilterOperator.IN.value)
    except ValueError:
        raise invalid_argument(f"Invalid filter operator: {raw.get('operator')!r}")

    values = raw.get('values') or []
    if isinstance(values, str) or not isinstance(values, (list, tuple)):
        raise invalid_argument("Filter values must be a list of strings")
    return make_condition(operator, [str(v) for v in values])


def parse_filters(data: Optional[Mapping[str, Any]]) -> Dict[FieldId, FilterCondition]:
    if not data:
        return {}
    if not isinstance(data, Mapping):
        raise invalid_argument("filters must be an object")

    filters = {}
    for key, raw in data.items():
        field_id = parse_field_id(key)
        condition = parse_condition(raw)
        if not condition.is_empty:
            filters[field_id] = condition
    return filters


def parse_group_by(data: Any) -> Tuple[FieldId, ...]:
    if not data:
        return ()
    if isinstance(data, str) or not isinstance(data, (list, tuple)):
        raise invalid_argument("groupBy must be a list of field ids")
    return tuple(parse_field_id(item) for item in data)


def parse_request(
    payload: Mapping[str, Any],
    clock: Clock = utc_now,
    default_page_size: int = 100,
    default_breakdown: FieldId = FieldId.HOST_NAME,
) -> QueryRequest:
    """Parse a wire-shaped query.

    Args:
        payload: JSON-decoded request body
        clock: Source of 'now' for relative intervals
        default_page_size: Page size when pagination is omitted
        default_breakdown: Breakdown field when none is given

    Returns:
        Validated QueryRequest

    Raises:
        QueryError: On any malformed part of the request
    """
    if not isinstance(payload, Mapping):
        raise invalid_argument("Request must be a JSON object")

    time_window = payload.get('timeWindow', payload.get('dateRange'))
    breakdown = payload.get('breakdownField', payload.get('chartBreakdownBy'))

    return QueryRequest(
        request_id=str(payload.get('requestId') or ''),
        window=resolve_window(time_window, payload.get('interval'), clock),
        pagination=parse_pagination(payload.get('pagination'), default_page_size),
        sort=parse_sort(payload.get('sort')),
        filters=parse_filters(payload.get('filters')),
        group_by=parse_group_by(payload.get('groupBy')),
        breakdown_field=parse_field_id(breakdown) if breakdown else default_breakdown,
    )


def parse_drilldown_keys(data: Optional[Mapping[str, Any]]) -> Dict[FieldId, str]:
    """Parse {fieldId: key} pairs taken from a clicked group or breakdown."""
    if not data:
        raise invalid_argument("Drill-down requires at least one key")
    if not isinstance(data, Mapping):
        raise invalid_argument("Drill-down keys must be an object")
    return {parse_field_id(field): str(key) for field, key in data.items()}


def parse_visible_fields(data: Any) -> List[FieldId]:
    if not data:
        raise invalid_argument("Export requires at least one column")
    if isinstance(data, str) or not isinstance(data, (list, tuple)):
        raise invalid_argument("columns must be a list of field ids")
    return [parse_field_id(item) for item in data]
