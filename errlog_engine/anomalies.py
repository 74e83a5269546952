"""
Repeated-message flags for a listing page.
"""

from collections import Counter
from typing import List, Sequence

from .models import LogRecord


def detect_anomalies(page: Sequence[LogRecord]) -> List[str]:
    """Return ids of page records whose message occurs more than once on the page.

    Records without an id cannot be flagged and are skipped.
    """
    counts = Counter(record.log_message for record in page)
    return [
        record.id for record in page
        if record.id is not None and counts[record.log_message] > 1
    ]
