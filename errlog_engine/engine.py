"""
Query orchestrator.

Composes the filter, sort, pagination, grouping, bucketing and export
stages in a fixed order per request kind:

- listing:       filter -> sort -> paginate
- group summary: filter -> group
- trend:         filter -> bucket
- drill-down:    filter -> match clicked keys -> sort -> paginate
- export:        filter -> sort -> project (whole population)
- dashboard:     filter -> (group | sort -> paginate) + bucket

Every stage is a pure function of its inputs; the record collection
passed in is never modified. Requests are validated before any stage
runs, and a request without a time window yields an empty response.
"""

import logging
import time
from typing import Iterable, List, Mapping, Optional, Sequence

from .anomalies import detect_anomalies
from .bucketing import BucketPolicy, bucket_trend
from .export import header_row, project, render_csv
from .fields import record_to_dict
from .filters import filter_by_keys, filter_records, filter_window
from .grouping import MISSING_LABEL, group_records
from .models import (
    FieldId,
    LogRecord,
    QueryRequest,
    QueryResponse,
    RequestKind,
    invalid_argument,
)
from .sorting import paginate, sort_records

logger = logging.getLogger(__name__)


class QueryEngine:
    """Executes dashboard queries against a record collection."""

    def __init__(
        self,
        policy: Optional[BucketPolicy] = None,
        missing_label: str = MISSING_LABEL,
    ):
        """Initialize the engine.

        Args:
            policy: Trend bucket granularity thresholds
            missing_label: Group/breakdown key for absent field values
        """
        self.policy = policy or BucketPolicy()
        self.missing_label = missing_label

    def validate(self, request: QueryRequest) -> None:
        """Reject a malformed request before any stage runs.

        Raises:
            QueryError: With kind InvalidArgument
        """
        if request.pagination.page_size <= 0:
            raise invalid_argument(
                f"pageSize must be positive, got {request.pagination.page_size}"
            )
        if request.pagination.page <= 0:
            raise invalid_argument(
                f"page must be positive, got {request.pagination.page}"
            )
        if request.window is not None:
            if request.window.start.tzinfo is None or request.window.end.tzinfo is None:
                raise invalid_argument("Time window bounds must be timezone-aware")
            if request.window.start > request.window.end:
                raise invalid_argument("Time window start is after its end")

    def _filter(
        self,
        request: QueryRequest,
        records: Iterable[LogRecord],
    ) -> Optional[List[LogRecord]]:
        """Apply the time window and column filters.

        Returns:
            Surviving records, or None when the request has no window
        """
        if request.window is None:
            logger.debug("Request %s has no time window", request.request_id)
            return None

        in_window = filter_window(records, request.window)
        filtered = filter_records(in_window, request.filters)
        logger.debug(
            "Filtered %d windowed records to %d with %d conditions",
            len(in_window), len(filtered), len(request.filters),
        )
        return filtered

    def _log_done(
        self,
        kind: RequestKind,
        request: QueryRequest,
        response: QueryResponse,
        start_time: float,
    ) -> QueryResponse:
        response.execution_time_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Request %s (%s): total=%d page=%d groups=%d buckets=%d in %.2f ms",
            request.request_id or '-', kind.value, response.total_count,
            len(response.logs), len(response.group_data),
            len(response.chart_data), response.execution_time_ms,
        )
        return response

    def _page(self, request: QueryRequest, filtered: List[LogRecord]) -> List[LogRecord]:
        ordered = sort_records(filtered, request.sort)
        return paginate(
            ordered, request.pagination.page, request.pagination.page_size
        )

    def listing(
        self,
        request: QueryRequest,
        records: Sequence[LogRecord],
    ) -> QueryResponse:
        """Filter, sort and paginate.

        Args:
            request: Parsed query
            records: Record collection to query

        Returns:
            Response carrying one page and the filtered total
        """
        start_time = time.perf_counter()
        self.validate(request)

        filtered = self._filter(request, records)
        if filtered is None:
            return self._log_done(RequestKind.LISTING, request, QueryResponse(), start_time)

        page = self._page(request, filtered)
        response = QueryResponse(
            logs=page,
            total_count=len(filtered),
            anomalous_log_ids=detect_anomalies(page),
        )
        return self._log_done(RequestKind.LISTING, request, response, start_time)

    def group_summary(
        self,
        request: QueryRequest,
        records: Sequence[LogRecord],
    ) -> QueryResponse:
        """Filter, then group the complete filtered population."""
        start_time = time.perf_counter()
        self.validate(request)

        filtered = self._filter(request, records)
        if filtered is None:
            return self._log_done(RequestKind.GROUP_SUMMARY, request, QueryResponse(), start_time)

        response = QueryResponse(
            total_count=len(filtered),
            group_data=group_records(filtered, request.group_by, self.missing_label),
        )
        return self._log_done(RequestKind.GROUP_SUMMARY, request, response, start_time)

    def trend(
        self,
        request: QueryRequest,
        records: Sequence[LogRecord],
    ) -> QueryResponse:
        """Filter, then bucket over the request window.

        Sort, grouping and pagination of the request are ignored.
        """
        start_time = time.perf_counter()
        self.validate(request)

        filtered = self._filter(request, records)
        if filtered is None:
            return self._log_done(RequestKind.TREND, request, QueryResponse(), start_time)

        response = QueryResponse(
            total_count=len(filtered),
            chart_data=bucket_trend(
                filtered,
                request.window,
                request.breakdown_field,
                self.policy,
                self.missing_label,
            ),
        )
        return self._log_done(RequestKind.TREND, request, response, start_time)

    def drill_down(
        self,
        request: QueryRequest,
        keys: Mapping[FieldId, str],
        records: Sequence[LogRecord],
    ) -> QueryResponse:
        """List the records behind a clicked group or breakdown key.

        Args:
            request: The query the aggregate was produced by
            keys: Clicked key per field (e.g. a group chain)
            records: Record collection to query

        Returns:
            A flat listing page over the base filters narrowed to the
            records the aggregate counted under keys; never grouped
        """
        if not keys:
            raise invalid_argument("Drill-down requires at least one key")

        start_time = time.perf_counter()
        self.validate(request)

        filtered = self._filter(request, records)
        if filtered is None:
            return self._log_done(RequestKind.DRILL_DOWN, request, QueryResponse(), start_time)

        narrowed = filter_by_keys(filtered, keys, self.missing_label)
        logger.debug(
            "Drill-down %s on %s kept %d of %d records",
            request.request_id or '-', {f.value: k for f, k in keys.items()},
            len(narrowed), len(filtered),
        )

        page = self._page(request, narrowed)
        response = QueryResponse(
            logs=page,
            total_count=len(narrowed),
            anomalous_log_ids=detect_anomalies(page),
        )
        return self._log_done(RequestKind.DRILL_DOWN, request, response, start_time)

    def export(
        self,
        request: QueryRequest,
        records: Sequence[LogRecord],
        visible_fields: Sequence[FieldId],
    ) -> List[List[str]]:
        """Filter, sort and project the whole matching population.

        Pagination of the request is ignored.

        Returns:
            One row of strings per record, columns in visible_fields order
        """
        if not visible_fields:
            raise invalid_argument("Export requires at least one column")

        start_time = time.perf_counter()
        self.validate(request)

        filtered = self._filter(request, records)
        if filtered is None:
            rows: List[List[str]] = []
        else:
            rows = project(sort_records(filtered, request.sort), visible_fields)

        logger.info(
            "Request %s (%s): %d rows x %d columns in %.2f ms",
            request.request_id or '-', RequestKind.EXPORT.value, len(rows),
            len(visible_fields), (time.perf_counter() - start_time) * 1000,
        )
        return rows

    def export_csv(
        self,
        request: QueryRequest,
        records: Sequence[LogRecord],
        visible_fields: Sequence[FieldId],
        include_header: bool = True,
    ) -> str:
        rows = self.export(request, records, visible_fields)
        header = header_row(visible_fields) if include_header else None
        return render_csv(rows, header)

    def execute(
        self,
        request: QueryRequest,
        records: Sequence[LogRecord],
    ) -> QueryResponse:
        """Run the dashboard pipeline.

        The group forest replaces the listing page when grouping is
        requested; the trend series is always computed. totalCount is the
        filtered population either way.

        Args:
            request: Parsed query
            records: Record collection to query

        Returns:
            Combined QueryResponse
        """
        start_time = time.perf_counter()
        self.validate(request)

        filtered = self._filter(request, records)
        if filtered is None:
            return self._log_done(RequestKind.DASHBOARD, request, QueryResponse(), start_time)

        response = QueryResponse(total_count=len(filtered))
        response.chart_data = bucket_trend(
            filtered,
            request.window,
            request.breakdown_field,
            self.policy,
            self.missing_label,
        )

        if request.group_by:
            response.group_data = group_records(
                filtered, request.group_by, self.missing_label
            )
        else:
            response.logs = self._page(request, filtered)
            response.anomalous_log_ids = detect_anomalies(response.logs)

        return self._log_done(RequestKind.DASHBOARD, request, response, start_time)


def run_kind(
    engine: QueryEngine,
    kind: RequestKind,
    request: QueryRequest,
    records: Sequence[LogRecord],
) -> QueryResponse:
    """Dispatch one of the response-producing branches by kind."""
    handlers = {
        RequestKind.DASHBOARD: engine.execute,
        RequestKind.LISTING: engine.listing,
        RequestKind.GROUP_SUMMARY: engine.group_summary,
        RequestKind.TREND: engine.trend,
    }
    if kind not in handlers:
        raise invalid_argument(f"Request kind {kind.value} needs extra arguments")
    return handlers[kind](request, records)


def response_to_dict(response: QueryResponse) -> dict:
    """Serialize a QueryResponse to its wire shape."""
    return {
        'logs': [record_to_dict(record) for record in response.logs],
        'totalCount': response.total_count,
        'groupData': [node.to_dict() for node in response.group_data],
        'chartData': [point.to_dict() for point in response.chart_data],
        'anomalousLogIds': list(response.anomalous_log_ids),
    }
