"""
Time-bucketing stage for trend charts.

Picks a bucket granularity from the width of the requested window,
assigns each record to the bucket its timestamp truncates to, and emits
a gapless, zero-filled series with a per-bucket breakdown tally.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List

from .fields import field_value
from .grouping import MISSING_LABEL, group_key
from .models import (
    BucketGranularity,
    FieldId,
    LogRecord,
    TimeWindow,
    TrendPoint,
)

BUCKET_WIDTHS = {
    BucketGranularity.DAY: timedelta(days=1),
    BucketGranularity.HOUR: timedelta(hours=1),
    BucketGranularity.HALF_HOUR: timedelta(minutes=30),
}


@dataclass(frozen=True)
class BucketPolicy:
    """Granularity thresholds, in hours of window span.

    Attributes:
        day_threshold_hours: Windows wider than this use day buckets
        half_hour_threshold_hours: Windows no wider than this use half-hour buckets
    """
    day_threshold_hours: float = 48
    half_hour_threshold_hours: float = 12

    def choose(self, window: TimeWindow) -> BucketGranularity:
        span_hours = (window.end - window.start).total_seconds() / 3600
        if span_hours > self.day_threshold_hours:
            return BucketGranularity.DAY
        if span_hours > self.half_hour_threshold_hours:
            return BucketGranularity.HOUR
        return BucketGranularity.HALF_HOUR


def truncate(instant: datetime, granularity: BucketGranularity) -> datetime:
    """Return the start of the bucket containing the instant (UTC)."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    else:
        instant = instant.astimezone(timezone.utc)

    instant = instant.replace(second=0, microsecond=0)
    if granularity == BucketGranularity.DAY:
        return instant.replace(hour=0, minute=0)
    if granularity == BucketGranularity.HOUR:
        return instant.replace(minute=0)
    return instant.replace(minute=0 if instant.minute < 30 else 30)


def bucket_label(bucket_start: datetime, granularity: BucketGranularity) -> str:
    if granularity == BucketGranularity.DAY:
        return f"{bucket_start:%b} {bucket_start.day:02d}"
    return f"{bucket_start:%H:%M}"


def bucket_starts(window: TimeWindow, granularity: BucketGranularity) -> List[datetime]:
    """List every bucket start covering the window, in order."""
    width = BUCKET_WIDTHS[granularity]
    current = truncate(window.start, granularity)
    last = truncate(window.end, granularity)

    starts = []
    while current <= last:
        starts.append(current)
        current = current + width
    return starts


def bucket_trend(
    records: Iterable[LogRecord],
    window: TimeWindow,
    breakdown_field: FieldId = FieldId.HOST_NAME,
    policy: BucketPolicy = BucketPolicy(),
    missing_label: str = MISSING_LABEL,
) -> List[TrendPoint]:
    """Build the trend series for a window.

    Args:
        records: Filtered records; those outside the window are ignored
        window: Inclusive window the series must cover
        breakdown_field: Field tallied inside each bucket
        policy: Granularity thresholds
        missing_label: Breakdown key for records lacking the field

    Returns:
        One TrendPoint per bucket, chronological, including empty buckets
    """
    granularity = policy.choose(window)
    points: Dict[datetime, TrendPoint] = {
        start: TrendPoint(bucket_start=start, label=bucket_label(start, granularity))
        for start in bucket_starts(window, granularity)
    }

    for record in records:
        timestamp = field_value(record, FieldId.LOG_DATE_TIME)
        if timestamp is None or not window.contains(timestamp):
            continue

        point = points.get(truncate(timestamp, granularity))
        if point is None:
            continue

        point.count += 1
        key = group_key(record, breakdown_field, missing_label)
        point.breakdown[key] = point.breakdown.get(key, 0) + 1

    return [points[start] for start in sorted(points)]
