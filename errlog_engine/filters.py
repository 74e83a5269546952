"""
Predicate evaluation and the filter stage.

Column filters are case-insensitive substring searches over the
canonical text of a field, combined with AND logic across columns.
"""

from typing import Dict, Iterable, List, Mapping, Sequence

from .fields import field_text, field_value
from .grouping import MISSING_LABEL, group_key
from .models import (
    FieldId,
    FilterCondition,
    FilterOperator,
    LogRecord,
    TimeWindow,
)


def matches(
    record: LogRecord,
    field_id: FieldId,
    condition: FilterCondition,
) -> bool:
    """Evaluate a single column condition against a record.

    Args:
        record: Record to evaluate
        field_id: Column the condition applies to
        condition: Operator and search terms

    Returns:
        True if the record satisfies the condition
    """
    text = field_text(record, field_id)

    if text is None:
        # "contains none of" is vacuously true for an absent value
        return condition.operator == FilterOperator.NOT_IN

    haystack = text.lower()
    hits = [value.lower() in haystack for value in condition.values]

    if condition.operator == FilterOperator.IN:
        return any(hits)
    elif condition.operator == FilterOperator.NOT_IN:
        return not any(hits)
    elif condition.operator == FilterOperator.CONTAINS_ALL:
        return all(hits)
    return False


def active_conditions(
    filters: Mapping[FieldId, FilterCondition],
) -> Dict[FieldId, FilterCondition]:
    """Drop conditions with no values; they are equivalent to no filter."""
    return {
        field_id: condition
        for field_id, condition in filters.items()
        if not condition.is_empty
    }


def filter_records(
    records: Iterable[LogRecord],
    filters: Mapping[FieldId, FilterCondition],
) -> List[LogRecord]:
    """Keep the records that satisfy every active condition.

    Order of the surviving records is preserved.
    """
    conditions = active_conditions(filters)
    if not conditions:
        return list(records)

    return [
        record for record in records
        if all(
            matches(record, field_id, condition)
            for field_id, condition in conditions.items()
        )
    ]


def filter_window(
    records: Iterable[LogRecord],
    window: TimeWindow,
) -> List[LogRecord]:
    """Keep the records whose timestamp falls inside the window."""
    result = []
    for record in records:
        timestamp = field_value(record, FieldId.LOG_DATE_TIME)
        if timestamp is not None and window.contains(timestamp):
            result.append(record)
    return result


def make_condition(
    operator: FilterOperator,
    values: Sequence[str],
) -> FilterCondition:
    """Build a condition, discarding blank and duplicate terms."""
    unique: List[str] = []
    for value in values:
        term = str(value).strip()
        if term and term not in unique:
            unique.append(term)
    return FilterCondition(operator=operator, values=tuple(unique))


def matches_keys(
    record: LogRecord,
    keys: Mapping[FieldId, str],
    missing_label: str = MISSING_LABEL,
) -> bool:
    """True if the record falls into the clicked group or breakdown slice.

    Keys compare exactly against the record's group key, so a key equal
    to missing_label selects the records lacking that field.
    """
    return all(
        group_key(record, field_id, missing_label) == key
        for field_id, key in keys.items()
    )


def filter_by_keys(
    records: Iterable[LogRecord],
    keys: Mapping[FieldId, str],
    missing_label: str = MISSING_LABEL,
) -> List[LogRecord]:
    """Narrow records to a clicked aggregate, preserving order.

    Args:
        records: Records already passed through the base filters
        keys: Group or breakdown key per field
        missing_label: Key the aggregate used for absent values

    Returns:
        Records the aggregate counted under those keys
    """
    return [record for record in records if matches_keys(record, keys, missing_label)]
