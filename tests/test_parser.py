"""
Unit tests for request parsing, record loading, configuration and the CLI.
"""

import argparse
import json
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from errlog_engine import (
    ErrorKind,
    FieldId,
    FilterCondition,
    FilterOperator,
    QueryError,
    SortDirection,
    parse_request,
)
from errlog_engine.bucketing import BucketPolicy
from errlog_engine.config import ConfigError, load_settings, settings_from_dict
from errlog_engine.fields import (
    FieldKind,
    field_kind,
    field_text,
    field_value,
    last_path_segment,
    parse_field_id,
    record_from_dict,
    record_to_dict,
)
from errlog_engine.mock_data import HOSTS, generate_mock_logs
from errlog_engine.parser import (
    parse_drilldown_keys,
    parse_interval,
    parse_visible_fields,
    preset_interval,
    resolve_window,
)
from errlog_engine.storage import LogStore, load_record_dicts


NOW = datetime(2024, 3, 31, 12, 0, 0, tzinfo=timezone.utc)


def fixed_clock():
    return NOW


def write_temp(content: str, suffix: str = '.json') -> str:
    with tempfile.NamedTemporaryFile(mode='w', suffix=suffix, delete=False) as f:
        f.write(content)
        return f.name


class TestTimeWindow:
    """Test cases for time window resolution."""

    def test_relative_interval(self):
        """Test an interval ends at the clock's now."""
        window = resolve_window(None, '7 days', fixed_clock)
        assert window.end == NOW
        assert window.start == NOW - timedelta(days=7)

    def test_month_interval_is_calendar_aware(self):
        """Test '1 month' back from March 31 clamps to February 29."""
        window = resolve_window(None, '1 month', fixed_clock)
        assert window.start == datetime(2024, 2, 29, 12, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize('interval,expected', [
        ('30 minutes', timedelta(minutes=30)),
        ('1 hour', timedelta(hours=1)),
        ('4 HOURS', timedelta(hours=4)),
        ('2 weeks', timedelta(weeks=2)),
    ])
    def test_interval_units(self, interval, expected):
        assert NOW - (NOW - parse_interval(interval)) == expected

    @pytest.mark.parametrize('interval', ['seven days', '7', '7 fortnights', ''])
    def test_invalid_interval(self, interval):
        with pytest.raises(QueryError):
            parse_interval(interval)

    def test_calendar_dates_cover_whole_days(self):
        """Test a date-only 'to' extends to the end of that day."""
        window = resolve_window({'from': '2024-01-01', 'to': '2024-01-03'}, None)
        assert window.start == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert window.end == datetime(2024, 1, 3, 23, 59, 59, 999999, tzinfo=timezone.utc)

    def test_instant_bounds_are_kept(self):
        window = resolve_window(
            {'from': '2024-01-01T06:00:00Z', 'to': '2024-01-01T08:30:00+00:00'}, None
        )
        assert window.end - window.start == timedelta(hours=2, minutes=30)

    def test_open_ended_window_ends_now(self):
        window = resolve_window({'from': '2024-03-30'}, None, fixed_clock)
        assert window.end == NOW

    def test_no_window(self):
        assert resolve_window(None, None) is None

    def test_both_notations_rejected(self):
        with pytest.raises(QueryError):
            resolve_window({'from': '2024-01-01'}, '1 day', fixed_clock)

    def test_reversed_window_rejected(self):
        with pytest.raises(QueryError):
            resolve_window({'from': '2024-01-05', 'to': '2024-01-01'}, None)

    def test_presets(self):
        assert preset_interval('7d') == '7 days'
        assert preset_interval('1m') == '1 month'
        assert preset_interval('none') is None
        with pytest.raises(QueryError):
            preset_interval('2y')


class TestRequestParsing:
    """Test cases for parsing wire-shaped queries."""

    def test_defaults(self):
        """Test an empty payload parses to defaults with no window."""
        request = parse_request({})
        assert request.window is None
        assert request.pagination.page == 1
        assert request.pagination.page_size == 100
        assert request.sort.field is None
        assert request.filters == {}
        assert request.group_by == ()
        assert request.breakdown_field == FieldId.HOST_NAME

    def test_full_request(self):
        request = parse_request({
            'requestId': 'req_3_abc',
            'interval': '1 day',
            'pagination': {'page': 2, 'pageSize': 25},
            'sort': {'column': 'error_number', 'direction': 'ascending'},
            'filters': {
                'host_name': {'operator': 'notIn', 'values': ['alpha', ' alpha ', '']},
                'log_message': ['timeout'],
                'user_id': 'guest',
            },
            'groupBy': ['host_name', 'error_number'],
            'chartBreakdownBy': 'user_id',
        }, clock=fixed_clock)

        assert request.request_id == 'req_3_abc'
        assert request.window.end == NOW
        assert request.pagination.page == 2
        assert request.pagination.page_size == 25
        assert request.sort.field == FieldId.ERROR_NUMBER
        assert request.sort.direction == SortDirection.ASCENDING
        assert request.filters[FieldId.HOST_NAME] == FilterCondition(
            FilterOperator.NOT_IN, ('alpha',)
        )
        assert request.filters[FieldId.LOG_MESSAGE].operator == FilterOperator.IN
        assert request.filters[FieldId.USER_ID].values == ('guest',)
        assert request.group_by == (FieldId.HOST_NAME, FieldId.ERROR_NUMBER)
        assert request.breakdown_field == FieldId.USER_ID

    def test_and_operator(self):
        request = parse_request({
            'filters': {'log_message': {'operator': 'and', 'values': ['a', 'b']}},
        })
        assert request.filters[FieldId.LOG_MESSAGE].operator == FilterOperator.CONTAINS_ALL

    def test_empty_conditions_dropped(self):
        request = parse_request({'filters': {'host_name': {'operator': 'in', 'values': []}}})
        assert request.filters == {}

    def test_date_range_alias(self):
        request = parse_request({'dateRange': {'from': '2024-01-01', 'to': '2024-01-01'}})
        assert request.window.start.date() == request.window.end.date()

    @pytest.mark.parametrize('payload', [
        {'pagination': {'page': 1, 'pageSize': 0}},
        {'pagination': {'page': 0, 'pageSize': 10}},
        {'pagination': {'pageSize': 'lots'}},
        {'sort': {'field': 'host_name', 'direction': 'sideways'}},
        {'filters': {'no_such_field': ['x']}},
        {'filters': {'host_name': {'operator': 'xor', 'values': ['x']}}},
        {'filters': {'host_name': {'operator': 'in', 'values': 'x'}}},
        {'groupBy': 'host_name'},
        {'groupBy': ['host_name', 'bogus']},
        {'breakdownField': 'bogus'},
    ])
    def test_invalid_requests(self, payload):
        """Test malformed parts raise InvalidArgument."""
        with pytest.raises(QueryError) as exc_info:
            parse_request(payload, clock=fixed_clock)
        assert exc_info.value.kind == ErrorKind.INVALID_ARGUMENT

    def test_drilldown_keys(self):
        keys = parse_drilldown_keys({'host_name': 'server-alpha-01', 'error_number': 500})
        assert keys == {FieldId.HOST_NAME: 'server-alpha-01', FieldId.ERROR_NUMBER: '500'}
        with pytest.raises(QueryError):
            parse_drilldown_keys({})

    def test_visible_fields(self):
        assert parse_visible_fields(['log_message', 'host_name']) == [
            FieldId.LOG_MESSAGE, FieldId.HOST_NAME,
        ]
        with pytest.raises(QueryError):
            parse_visible_fields([])


class TestFieldCatalogue:
    """Test cases for field lookups and record conversion."""

    def test_every_field_reads_its_own_column(self):
        """Test each accessor returns the record attribute of the same name."""
        samples = {FieldKind.TIMESTAMP: '2024-01-02T12:00:00Z', FieldKind.NUMBER: 7}
        record = record_from_dict({
            field_id.value: samples.get(field_kind(field_id), field_id.value)
            for field_id in FieldId
        })
        for field_id in FieldId:
            assert field_value(record, field_id) == getattr(record, field_id.value)
        assert field_value(record, FieldId.HOST_NAME) == 'host_name'

    def test_parse_field_id(self):
        assert parse_field_id('host_name') == FieldId.HOST_NAME
        with pytest.raises(QueryError):
            parse_field_id('hostname')

    def test_last_path_segment(self):
        assert last_path_segment('/apps/main-service') == 'main-service'
        assert last_path_segment('standalone') == 'standalone'
        assert last_path_segment('/apps/') == ''

    def test_record_from_dict(self):
        """Test typed coercion of wire values."""
        record = record_from_dict({
            'id': 'log-1',
            'log_date_time': '2024-01-02T12:00:00Z',
            'host_name': 'server-alpha-01',
            'port_number': '8080',
            'error_number': 'not-a-number',
            'report_id_name': '',
            'unknown': 'ignored',
        })

        assert record.id == 'log-1'
        assert record.log_date_time == datetime(2024, 1, 2, 12, tzinfo=timezone.utc)
        assert record.port_number == 8080
        assert record.error_number is None
        assert record.report_id_name == ''
        assert record.user_id is None

    def test_empty_string_is_a_value(self):
        """Test an empty string is not treated as missing."""
        record = record_from_dict({'report_id_name': ''})
        assert field_text(record, FieldId.REPORT_ID_NAME) == ''

    def test_record_to_dict(self):
        record = record_from_dict({'id': 'x', 'log_date_time': '2024-01-02T12:00:00+00:00'})
        data = record_to_dict(record)
        assert data['id'] == 'x'
        assert data['log_date_time'] == '2024-01-02T12:00:00+00:00'
        assert data['host_name'] is None


class TestConfig:
    """Test cases for YAML settings."""

    def test_defaults(self):
        settings = settings_from_dict(None)
        assert settings.default_page_size == 100
        assert settings.missing_label == 'N/A'
        assert settings.bucket_policy == BucketPolicy()

    def test_overrides(self):
        settings = settings_from_dict({
            'default_page_size': 50,
            'default_breakdown_field': 'error_number',
            'bucket_policy': {'day_threshold_hours': 72, 'half_hour_threshold_hours': 6},
            'log_level': 'debug',
            'unexpected': True,
        })
        assert settings.default_page_size == 50
        assert settings.default_breakdown_field == FieldId.ERROR_NUMBER
        assert settings.bucket_policy.day_threshold_hours == 72.0
        assert settings.log_level == 'DEBUG'

    @pytest.mark.parametrize('data', [
        {'default_page_size': 'ten'},
        {'default_page_size': 0},
        {'default_breakdown_field': 'bogus'},
        {'bucket_policy': {'day_threshold_hours': 6, 'half_hour_threshold_hours': 12}},
        {'bucket_policy': 'fast'},
        ['not', 'a', 'mapping'],
    ])
    def test_invalid_settings(self, data):
        with pytest.raises(ConfigError):
            settings_from_dict(data)

    def test_load_settings_from_file(self):
        temp_file = write_temp('default_page_size: 20\nmock_seed: 7\n', suffix='.yaml')
        try:
            settings = load_settings(temp_file)
            assert settings.default_page_size == 20
            assert settings.mock_seed == 7
        finally:
            Path(temp_file).unlink()

    def test_load_settings_from_env(self, monkeypatch):
        temp_file = write_temp('missing_label: "(none)"\n', suffix='.yaml')
        monkeypatch.setenv('ERRLOG_ENGINE_CONFIG', temp_file)
        try:
            assert load_settings().missing_label == '(none)'
        finally:
            Path(temp_file).unlink()

    def test_missing_file(self):
        with pytest.raises(ConfigError):
            load_settings('/nonexistent/errlog.yaml')


class TestStorage:
    """Test cases for the record store and file loaders."""

    def test_load_ndjson(self):
        temp_file = write_temp(
            '{"id": "a", "host_name": "h1"}\n\n{"id": "b", "host_name": "h2"}\n',
            suffix='.ndjson',
        )
        try:
            items = load_record_dicts(temp_file)
            assert [item['id'] for item in items] == ['a', 'b']
        finally:
            Path(temp_file).unlink()

    def test_load_json_array(self):
        temp_file = write_temp(json.dumps([{'id': 'a'}, {'id': 'b'}]))
        try:
            store = LogStore.from_file(temp_file)
            assert len(store) == 2
            assert store.snapshot()[1].id == 'b'
        finally:
            Path(temp_file).unlink()

    @pytest.mark.parametrize('content', ['{"id": "a"}\nnot json\n', '[1, 2]'])
    def test_invalid_content(self, content):
        temp_file = write_temp(content)
        try:
            with pytest.raises(ValueError):
                load_record_dicts(temp_file)
        finally:
            Path(temp_file).unlink()

    def test_missing_file(self):
        with pytest.raises(ValueError):
            load_record_dicts('/nonexistent/records.json')

    def test_replace_keeps_old_snapshots(self):
        """Test a snapshot is unaffected by a later replace."""
        store = LogStore(generate_mock_logs(3, seed=1, now=NOW))
        before = store.snapshot()

        assert store.replace([]) == 0
        assert len(before) == 3
        assert store.snapshot() == ()


class TestMockData:
    """Test cases for the mock generator."""

    def test_seeded_output_is_reproducible(self):
        assert generate_mock_logs(20, seed=42, now=NOW) == generate_mock_logs(20, seed=42, now=NOW)

    def test_records_are_recent_and_complete(self):
        records = generate_mock_logs(50, seed=3, now=NOW)

        assert len(records) == 50
        assert len({record.id for record in records}) == 50
        for record in records:
            assert NOW - timedelta(days=30) <= record.log_date_time <= NOW
            assert record.as_start_date_time == record.log_date_time - timedelta(hours=6)
            assert record.host_name in HOSTS


class TestCLI:
    """Test cases for the run_query command line."""

    @pytest.fixture
    def records_file(self):
        lines = [
            {'id': 'a', 'log_date_time': '2024-01-01T08:00:00Z', 'host_name': 'server-alpha-01',
             'error_number': 500, 'repository_path': '/apps/main-service'},
            {'id': 'b', 'log_date_time': '2024-01-02T09:00:00Z', 'host_name': 'server-beta-02',
             'error_number': 404, 'repository_path': '/apps/auth-service'},
            {'id': 'c', 'log_date_time': '2024-02-01T09:00:00Z', 'host_name': 'server-alpha-01',
             'error_number': 500},
        ]
        temp_file = write_temp('\n'.join(json.dumps(line) for line in lines), suffix='.ndjson')
        yield temp_file
        Path(temp_file).unlink(missing_ok=True)

    @staticmethod
    def make_args(records_file, kind='list', **overrides):
        values = dict(
            kind=kind, records=records_file, mock=None, request=None, preset=None,
            interval=None, date_from='2024-01-01', date_to='2024-01-03', group_by=None,
            page=None, page_size=None, key=None, columns=None, config=None,
        )
        values.update(overrides)
        return argparse.Namespace(**values)

    @pytest.fixture(autouse=True)
    def no_config_env(self, monkeypatch):
        monkeypatch.delenv('ERRLOG_ENGINE_CONFIG', raising=False)

    def test_list(self, records_file):
        from run_query import run

        output = json.loads(run(self.make_args(records_file)))
        assert output['totalCount'] == 2
        assert [log['id'] for log in output['logs']] == ['b', 'a']
        assert len(output['chartData']) == 0

    def test_group(self, records_file):
        from run_query import run

        output = json.loads(run(self.make_args(records_file, kind='group', group_by=['error_number'])))
        assert [(g['key'], g['count']) for g in output['groupData']] == [('500', 1), ('404', 1)]

    def test_drilldown(self, records_file):
        from run_query import run

        args = self.make_args(records_file, kind='drilldown', key=['host_name=server-beta-02'])
        output = json.loads(run(args))
        assert [log['id'] for log in output['logs']] == ['b']

    def test_export(self, records_file):
        from run_query import run

        args = self.make_args(records_file, kind='export', columns=['host_name', 'repository_path'])
        assert run(args) == (
            'Host,Model Name\r\n'
            'server-beta-02,auth-service\r\n'
            'server-alpha-01,main-service\r\n'
        )

    def test_export_requires_columns(self, records_file):
        from run_query import run

        with pytest.raises(ValueError):
            run(self.make_args(records_file, kind='export'))

    def test_request_file_overrides(self, records_file):
        from run_query import build_payload

        request_file = write_temp(json.dumps({'interval': '1 day', 'pagination': {'page': 3}}))
        try:
            payload = build_payload(self.make_args(records_file, request=request_file, page_size=5))
        finally:
            Path(request_file).unlink()

        assert 'interval' not in payload
        assert payload['timeWindow'] == {'from': '2024-01-01', 'to': '2024-01-03'}
        assert payload['pagination'] == {'page': 3, 'pageSize': 5}
