"""
Hierarchical grouping stage.

Partitions records along an ordered group path into a forest of
GroupNode, each level ordered by record count (largest first).
"""

from typing import Dict, Iterable, List, Optional, Sequence

from .fields import field_text
from .models import FieldId, GroupNode, LogRecord

MISSING_LABEL = 'N/A'


def group_key(record: LogRecord, field_id: FieldId, missing_label: str = MISSING_LABEL) -> str:
    """Return the string a record is grouped under for one field."""
    text = field_text(record, field_id)
    return missing_label if text is None else text


def _partition(
    records: Iterable[LogRecord],
    field_id: FieldId,
    missing_label: str,
) -> Dict[str, List[LogRecord]]:
    buckets: Dict[str, List[LogRecord]] = {}
    for record in records:
        key = group_key(record, field_id, missing_label)
        if key not in buckets:
            buckets[key] = []
        buckets[key].append(record)
    return buckets


def group_records(
    records: Sequence[LogRecord],
    group_by: Sequence[FieldId],
    missing_label: str = MISSING_LABEL,
) -> List[GroupNode]:
    """Group records recursively along the group path.

    Args:
        records: Filtered record population
        group_by: Ordered fields; an empty path disables grouping
        missing_label: Key used for records lacking the field

    Returns:
        Group forest; siblings ordered by count descending, ties in
        first-encountered order
    """
    if not group_by:
        return []

    field_id = group_by[0]
    remaining = group_by[1:]

    nodes = [
        GroupNode(
            key=key,
            count=len(members),
            subgroups=group_records(members, remaining, missing_label),
        )
        for key, members in _partition(records, field_id, missing_label).items()
    ]
    nodes.sort(key=lambda node: node.count, reverse=True)
    return nodes


def leaf_total(forest: Iterable[GroupNode]) -> int:
    """Sum the counts of the leaves of a group forest."""
    total = 0
    for node in forest:
        if node.subgroups:
            total += leaf_total(node.subgroups)
        else:
            total += node.count
    return total


def find_group(forest: Iterable[GroupNode], path: Sequence[str]) -> Optional[GroupNode]:
    """Follow a chain of keys down the forest; None if any key is absent."""
    nodes = list(forest)
    found = None
    for key in path:
        found = next((node for node in nodes if node.key == key), None)
        if found is None:
            return None
        nodes = found.subgroups
    return found
