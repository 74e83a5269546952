"""
Data models for the error-log query engine.

Defines the log record value type, filter/sort/group/window descriptors,
the aggregate result types and the typed error raised on invalid requests.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple


class FieldId(str, Enum):
    """Stable identifier of one column of a log record."""
    LOG_DATE_TIME = 'log_date_time'
    HOST_NAME = 'host_name'
    REPOSITORY_PATH = 'repository_path'
    PORT_NUMBER = 'port_number'
    VERSION_NUMBER = 'version_number'
    AS_SERVER_MODE = 'as_server_mode'
    AS_START_DATE_TIME = 'as_start_date_time'
    AS_SERVER_CONFIG = 'as_server_config'
    USER_ID = 'user_id'
    REPORT_ID_NAME = 'report_id_name'
    ERROR_NUMBER = 'error_number'
    XQL_QUERY_ID = 'xql_query_id'
    LOG_MESSAGE = 'log_message'


class FilterOperator(str, Enum):
    """Column filter operators, valued by their wire names."""
    IN = 'in'
    NOT_IN = 'notIn'
    CONTAINS_ALL = 'and'


class SortDirection(str, Enum):
    ASCENDING = 'ascending'
    DESCENDING = 'descending'


class BucketGranularity(str, Enum):
    DAY = 'day'
    HOUR = 'hour'
    HALF_HOUR = 'half-hour'


class RequestKind(str, Enum):
    """Pipeline branches the orchestrator can run."""
    DASHBOARD = 'dashboard'
    LISTING = 'listing'
    GROUP_SUMMARY = 'group_summary'
    TREND = 'trend'
    DRILL_DOWN = 'drill_down'
    EXPORT = 'export'


class ErrorKind(str, Enum):
    INVALID_ARGUMENT = 'InvalidArgument'
    EMPTY_INPUT = 'EmptyInput'


class QueryError(Exception):
    """Raised when a request cannot be executed.

    Attributes:
        kind: Category of the failure
        message: Human readable description
    """

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


def invalid_argument(message: str) -> QueryError:
    """Build a QueryError of kind InvalidArgument."""
    return QueryError(ErrorKind.INVALID_ARGUMENT, message)


def _is_naive(value: object) -> bool:
    return isinstance(value, datetime) and value.tzinfo is None


@dataclass(frozen=True)
class LogRecord:
    """One error log entry.

    Attributes:
        log_date_time: When the error was logged
        host_name: Host that produced the error
        repository_path: Hierarchical path of the model/repository
        port_number: Server port
        version_number: Application server version string
        as_server_mode: Server mode (production, staging, ...)
        as_start_date_time: When the application server was started
        as_server_config: Server configuration name
        user_id: User that triggered the error
        report_id_name: Report being executed
        error_number: Numeric error code
        xql_query_id: Query identifier
        log_message: Free-text error message
        id: Optional opaque record identifier (not a column)
    """
    log_date_time: Optional[datetime] = None
    host_name: Optional[str] = None
    repository_path: Optional[str] = None
    port_number: Optional[int] = None
    version_number: Optional[str] = None
    as_server_mode: Optional[str] = None
    as_start_date_time: Optional[datetime] = None
    as_server_config: Optional[str] = None
    user_id: Optional[str] = None
    report_id_name: Optional[str] = None
    error_number: Optional[int] = None
    xql_query_id: Optional[str] = None
    log_message: Optional[str] = None
    id: Optional[str] = None

    def __post_init__(self):
        # naive instants are taken as UTC
        if _is_naive(self.log_date_time):
            object.__setattr__(self, 'log_date_time', self.log_date_time.replace(tzinfo=timezone.utc))
        if _is_naive(self.as_start_date_time):
            object.__setattr__(self, 'as_start_date_time', self.as_start_date_time.replace(tzinfo=timezone.utc))


@dataclass(frozen=True)
class FilterCondition:
    """A single column filter condition.

    Attributes:
        operator: How the values are combined
        values: Ordered, de-duplicated search terms
    """
    operator: FilterOperator
    values: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        """An empty condition is equivalent to no filter at all."""
        return len(self.values) == 0


ColumnFilters = Mapping[FieldId, FilterCondition]


@dataclass(frozen=True)
class SortSpec:
    """Requested ordering; a missing field or direction means the default."""
    field: Optional[FieldId] = None
    direction: Optional[SortDirection] = None


DEFAULT_SORT = SortSpec(FieldId.LOG_DATE_TIME, SortDirection.DESCENDING)


@dataclass(frozen=True)
class TimeWindow:
    """Inclusive time window, both ends timezone-aware."""
    start: datetime
    end: datetime

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant <= self.end


@dataclass(frozen=True)
class Pagination:
    page: int = 1
    page_size: int = 100


@dataclass
class GroupNode:
    """A named group of records, possibly nested.

    Attributes:
        key: Field value shared by every record in the group
        count: Number of records in the group
        subgroups: Child groups for the next field of the group path
    """
    key: str
    count: int
    subgroups: List['GroupNode'] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            'key': self.key,
            'count': self.count,
            'subgroups': [child.to_dict() for child in self.subgroups],
        }


@dataclass
class TrendPoint:
    """Aggregate for one time bucket.

    Attributes:
        bucket_start: Inclusive start of the bucket
        count: Records that fell into the bucket
        breakdown: Record count per value of the breakdown field
        label: Short display label for chart axes
    """
    bucket_start: datetime
    count: int = 0
    breakdown: Dict[str, int] = field(default_factory=dict)
    label: str = ''

    def to_dict(self) -> Dict[str, object]:
        return {
            'date': self.bucket_start.isoformat(),
            'count': self.count,
            'breakdown': dict(self.breakdown),
            'formattedDate': self.label,
        }


@dataclass(frozen=True)
class QueryRequest:
    """A fully parsed query.

    Attributes:
        request_id: Caller supplied identifier, echoed in logs
        window: Resolved time window; None means no window was supplied
        pagination: Page to return for listing requests
        sort: Requested ordering
        filters: Column filters, at most one per field
        group_by: Ordered group path; empty disables grouping
        breakdown_field: Field tallied per trend bucket
    """
    request_id: str = ''
    window: Optional[TimeWindow] = None
    pagination: Pagination = field(default_factory=Pagination)
    sort: SortSpec = field(default_factory=SortSpec)
    filters: Mapping[FieldId, FilterCondition] = field(default_factory=dict)
    group_by: Tuple[FieldId, ...] = ()
    breakdown_field: FieldId = FieldId.HOST_NAME


@dataclass
class QueryResponse:
    """Result of one orchestrated request.

    Attributes:
        logs: Records of the requested page (empty for group summaries)
        total_count: Size of the filtered population before pagination
        group_data: Group forest (empty unless grouping was requested)
        chart_data: Trend series (empty unless a trend was computed)
        anomalous_log_ids: Ids of page records whose message repeats on the page
        execution_time_ms: Wall clock time spent in the engine
    """
    logs: List[LogRecord] = field(default_factory=list)
    total_count: int = 0
    group_data: List[GroupNode] = field(default_factory=list)
    chart_data: List[TrendPoint] = field(default_factory=list)
    anomalous_log_ids: List[str] = field(default_factory=list)
    execution_time_ms: float = 0.0
