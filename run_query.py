#!/usr/bin/env python3
"""
CLI entry point for running dashboard queries against a log file.

Loads records from an NDJSON or JSON array file (or generates mock
records), reads a query from a JSON file or from flags, and prints the
listing, group summary, trend series, drill-down page or CSV export.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List

from errlog_engine.config import ConfigError, configure_logging, load_settings
from errlog_engine.engine import QueryEngine, response_to_dict, run_kind
from errlog_engine.mock_data import generate_mock_logs
from errlog_engine.models import LogRecord, QueryError, RequestKind
from errlog_engine.parser import (
    parse_drilldown_keys,
    parse_request,
    parse_visible_fields,
    preset_interval,
)
from errlog_engine.storage import LogStore

logger = logging.getLogger('run_query')

KINDS = {
    'dashboard': RequestKind.DASHBOARD,
    'list': RequestKind.LISTING,
    'group': RequestKind.GROUP_SUMMARY,
    'trend': RequestKind.TREND,
    'drilldown': RequestKind.DRILL_DOWN,
    'export': RequestKind.EXPORT,
}


def load_request(request_file: str) -> Dict[str, Any]:
    """Load a wire-shaped query from a JSON file.

    Raises:
        ValueError: If the file is missing or not a JSON object
    """
    path = Path(request_file)
    if not path.exists():
        raise ValueError(f"Request file not found: {request_file}")

    with open(path, 'r') as f:
        try:
            content = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in request file: {e}")

    if not isinstance(content, dict):
        raise ValueError("Request file must contain a JSON object")
    return content


def build_payload(args: argparse.Namespace) -> Dict[str, Any]:
    """Merge the request file with command-line overrides."""
    payload: Dict[str, Any] = load_request(args.request) if args.request else {}

    if args.preset:
        payload['interval'] = preset_interval(args.preset)
        payload.pop('timeWindow', None)
    if args.interval:
        payload['interval'] = args.interval
        payload.pop('timeWindow', None)
    if args.date_from:
        payload['timeWindow'] = {'from': args.date_from, 'to': args.date_to}
        payload.pop('interval', None)
    if args.group_by:
        payload['groupBy'] = args.group_by
    if args.page or args.page_size:
        pagination = dict(payload.get('pagination') or {})
        if args.page:
            pagination['page'] = args.page
        if args.page_size:
            pagination['pageSize'] = args.page_size
        payload['pagination'] = pagination
    return payload


def load_records(args: argparse.Namespace, mock_records: int, mock_seed: Any) -> List[LogRecord]:
    if args.mock is not None:
        return generate_mock_logs(args.mock or mock_records, seed=mock_seed)
    return list(LogStore.from_file(args.records).snapshot())


def run(args: argparse.Namespace) -> str:
    """Execute the requested query and return the text to print.

    Raises:
        ValueError, QueryError, ConfigError: On invalid input
    """
    settings = load_settings(args.config)
    engine = QueryEngine(settings.bucket_policy, settings.missing_label)

    records = load_records(args, settings.mock_records, settings.mock_seed)
    logger.info(f"Loaded {len(records)} records")

    query = parse_request(
        build_payload(args),
        default_page_size=settings.default_page_size,
        default_breakdown=settings.default_breakdown_field,
    )
    kind = KINDS[args.kind]

    if kind == RequestKind.EXPORT:
        if not args.columns:
            raise ValueError("--columns is required for export")
        return engine.export_csv(query, records, parse_visible_fields(args.columns))

    if kind == RequestKind.DRILL_DOWN:
        keys = parse_drilldown_keys(dict(pair.split('=', 1) for pair in args.key or []))
        response = engine.drill_down(query, keys, records)
    else:
        response = run_kind(engine, kind, query, records)

    output = response_to_dict(response)
    output['executionTimeMs'] = response.execution_time_ms
    return json.dumps(output, indent=2)


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Error log query engine - filter, group and chart error logs"
    )

    parser.add_argument(
        "kind",
        choices=sorted(KINDS),
        help="Pipeline to run",
    )

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--records",
        help="Path to records file (NDJSON or JSON array format)",
    )
    source.add_argument(
        "--mock",
        type=int,
        nargs='?',
        const=0,
        help="Generate N mock records instead of reading a file",
    )

    parser.add_argument("-q", "--request", help="Path to a JSON query file")
    parser.add_argument("--preset", help="Time preset (1h, 4h, 8h, 1d, 7d, 15d, 1m)")
    parser.add_argument("--interval", help="Relative window, e.g. '7 days'")
    parser.add_argument("--from", dest="date_from", help="Window start (date or ISO-8601)")
    parser.add_argument("--to", dest="date_to", help="Window end (date or ISO-8601)")
    parser.add_argument("--group-by", nargs='+', help="Field ids to group by, outermost first")
    parser.add_argument("--page", type=int, help="1-indexed page number")
    parser.add_argument("--page-size", type=int, help="Records per page")
    parser.add_argument("--key", action='append', help="Drill-down key as field=value (repeatable)")
    parser.add_argument("--columns", nargs='+', help="Field ids to export, in order")
    parser.add_argument("-c", "--config", help="Path to YAML configuration file")
    parser.add_argument("-o", "--output", help="Write output to this file")
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()
    configure_logging(debug=args.verbose)

    try:
        output = run(args)
    except (ValueError, QueryError, ConfigError) as e:
        print(json.dumps({"error": str(e)}, indent=2), file=sys.stderr)
        sys.exit(1)

    if args.output:
        Path(args.output).write_text(output)
        logger.info(f"Results saved to {args.output}")
    else:
        print(output)


if __name__ == "__main__":
    main()
