"""
FastAPI application for the error-log query engine.

Provides endpoints for:
- Dashboard queries (listing or group summary plus trend series)
- Trend-only queries
- Drill-down from a group or breakdown key to a flat listing
- CSV export of the whole matching population
- Field catalogue and health check
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict, Field

from .config import EngineSettings, configure_logging, load_settings
from .engine import QueryEngine, response_to_dict
from .fields import FIELD_SPECS
from .mock_data import generate_mock_logs
from .models import QueryError, QueryRequest
from .parser import (
    parse_drilldown_keys,
    parse_request,
    parse_visible_fields,
    utc_now,
)
from .storage import LogStore

logger = logging.getLogger(__name__)


# Pydantic models for API requests/responses


class TimeWindowModel(BaseModel):
    """Absolute time window; dates or ISO-8601 instants."""
    model_config = ConfigDict(populate_by_name=True)

    from_: str = Field(..., alias='from')
    to: Optional[str] = None


class PaginationModel(BaseModel):
    page: int = 1
    pageSize: int = 100


class SortModel(BaseModel):
    field: Optional[str] = None
    column: Optional[str] = None
    direction: Optional[str] = None


class LogsRequest(BaseModel):
    """Dashboard query."""
    model_config = ConfigDict(extra='ignore')

    requestId: str = ''
    timeWindow: Optional[TimeWindowModel] = None
    dateRange: Optional[TimeWindowModel] = None
    interval: Optional[str] = None
    pagination: Optional[PaginationModel] = None
    sort: Optional[SortModel] = None
    filters: Dict[str, Any] = Field(default_factory=dict)
    groupBy: List[str] = Field(default_factory=list)
    breakdownField: Optional[str] = None
    chartBreakdownBy: Optional[str] = None


class DrilldownRequest(LogsRequest):
    """Dashboard query plus the clicked group/breakdown keys."""
    keys: Dict[str, str] = Field(..., description="Field id to clicked key")


class ExportRequest(LogsRequest):
    """Dashboard query plus the columns to export."""
    columns: List[str] = Field(..., description="Visible field ids, in order")
    includeHeader: bool = True


class GroupNodeModel(BaseModel):
    key: str
    count: int
    subgroups: List['GroupNodeModel'] = Field(default_factory=list)


class TrendPointModel(BaseModel):
    date: str
    count: int
    breakdown: Dict[str, int]
    formattedDate: str


class LogsResponse(BaseModel):
    """Response from the query endpoints."""
    logs: List[Dict[str, Any]]
    totalCount: int
    groupData: List[GroupNodeModel] = Field(default_factory=list)
    chartData: List[TrendPointModel] = Field(default_factory=list)
    anomalousLogIds: List[str] = Field(default_factory=list)


class FieldInfo(BaseModel):
    id: str
    label: str
    kind: str


GroupNodeModel.model_rebuild()


def _default_store(settings: EngineSettings) -> LogStore:
    if settings.data_file:
        return LogStore.from_file(settings.data_file)
    logger.info(f"Generating {settings.mock_records} mock records")
    return LogStore(generate_mock_logs(settings.mock_records, seed=settings.mock_seed))


def create_app(
    store: Optional[LogStore] = None,
    settings: Optional[EngineSettings] = None,
    clock: Callable[[], datetime] = utc_now,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        store: Optional record source (for testing)
        settings: Optional settings; loaded from ERRLOG_ENGINE_CONFIG otherwise
        clock: Source of 'now' for relative intervals

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(
        title="Error Log Query API",
        description="Filtering, grouping and trend aggregation over error logs",
        version="1.0.0"
    )

    settings = settings or load_settings()
    configure_logging(settings.log_level)
    store = store if store is not None else _default_store(settings)
    engine = QueryEngine(settings.bucket_policy, settings.missing_label)

    def parse(request: LogsRequest) -> QueryRequest:
        payload = request.model_dump(by_alias=True, exclude_none=True)
        try:
            return parse_request(
                payload,
                clock=clock,
                default_page_size=settings.default_page_size,
                default_breakdown=settings.default_breakdown_field,
            )
        except QueryError as e:
            raise bad_request(request.requestId, e)

    def bad_request(request_id: str, error: QueryError) -> HTTPException:
        logger.warning(f"Rejected request {request_id or '-'}: {error}")
        return HTTPException(status_code=400, detail=error.message)

    # API Routes

    @app.post("/api/logs", response_model=LogsResponse)
    async def query_logs(request: LogsRequest) -> Dict[str, Any]:
        """Run the dashboard pipeline.

        Args:
            request: Dashboard query

        Returns:
            Page or group forest, filtered total and trend series
        """
        query = parse(request)
        try:
            return response_to_dict(engine.execute(query, store.snapshot()))
        except QueryError as e:
            raise bad_request(request.requestId, e)

    @app.post("/api/logs/trend", response_model=LogsResponse)
    async def query_trend(request: LogsRequest) -> Dict[str, Any]:
        """Compute only the trend series for a query."""
        query = parse(request)
        try:
            return response_to_dict(engine.trend(query, store.snapshot()))
        except QueryError as e:
            raise bad_request(request.requestId, e)

    @app.post("/api/logs/drilldown", response_model=LogsResponse)
    async def drilldown(request: DrilldownRequest) -> Dict[str, Any]:
        """List the records behind a clicked group or breakdown key.

        Args:
            request: Base query and clicked keys

        Returns:
            Flat listing page with the filtered total
        """
        query = parse(request)
        try:
            keys = parse_drilldown_keys(request.keys)
            return response_to_dict(engine.drill_down(query, keys, store.snapshot()))
        except QueryError as e:
            raise bad_request(request.requestId, e)

    @app.post("/api/logs/export")
    async def export_logs(request: ExportRequest) -> Response:
        """Export every matching record as CSV.

        Args:
            request: Query and visible columns

        Returns:
            text/csv attachment
        """
        query = parse(request)
        try:
            columns = parse_visible_fields(request.columns)
            body = engine.export_csv(
                query, store.snapshot(), columns, request.includeHeader
            )
        except QueryError as e:
            raise bad_request(request.requestId, e)

        stamp = datetime.now(timezone.utc).strftime('%Y%m%d-%H%M%S')
        return Response(
            content=body,
            media_type="text/csv",
            headers={
                "Content-Disposition": f'attachment; filename="error-logs-{stamp}.csv"'
            },
        )

    @app.get("/api/fields", response_model=List[FieldInfo])
    async def list_fields() -> List[FieldInfo]:
        """Describe every queryable column."""
        return [
            FieldInfo(id=spec.field_id.value, label=spec.label, kind=spec.kind.value)
            for spec in FIELD_SPECS.values()
        ]

    @app.get("/health")
    async def health_check() -> Dict[str, Any]:
        """Health check endpoint.

        Returns:
            Health status and size of the record collection
        """
        return {"status": "healthy", "records": len(store)}

    return app


# Create the app instance
app = create_app()
