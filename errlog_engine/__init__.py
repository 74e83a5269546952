"""
Error Log Query Engine Package.

Filters, sorts, paginates, groups and time-buckets error log records for
dashboard listings, group summaries, trend charts, drill-downs and exports.
"""

from .bucketing import BucketPolicy, bucket_trend
from .engine import QueryEngine, response_to_dict
from .export import project, to_csv
from .filters import filter_by_keys, filter_records, matches
from .grouping import group_records
from .models import (
    BucketGranularity,
    ErrorKind,
    FieldId,
    FilterCondition,
    FilterOperator,
    GroupNode,
    LogRecord,
    Pagination,
    QueryError,
    QueryRequest,
    QueryResponse,
    RequestKind,
    SortDirection,
    SortSpec,
    TimeWindow,
    TrendPoint,
)
from .parser import parse_request
from .sorting import paginate, sort_records

__all__ = [
    'BucketGranularity',
    'BucketPolicy',
    'ErrorKind',
    'FieldId',
    'FilterCondition',
    'FilterOperator',
    'GroupNode',
    'LogRecord',
    'Pagination',
    'QueryEngine',
    'QueryError',
    'QueryRequest',
    'QueryResponse',
    'RequestKind',
    'SortDirection',
    'SortSpec',
    'TimeWindow',
    'TrendPoint',
    'bucket_trend',
    'filter_by_keys',
    'filter_records',
    'group_records',
    'matches',
    'paginate',
    'parse_request',
    'project',
    'response_to_dict',
    'sort_records',
    'to_csv',
]
