"""
Mock error log generator.

Produces a synthetic record collection for demos and tests, with values
drawn from a fixed vocabulary of hosts, models, users and messages.
"""

import random
import string
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from .models import LogRecord

HOSTS = ['server-alpha-01', 'server-beta-02', 'server-gamma-03', 'web-prod-1', 'db-cluster-5']
REPOSITORIES = ['/apps/main-service', '/apps/auth-service', '/apps/payment-gateway', '/apps/user-profiles']
VERSIONS = ['1.2.3', '1.2.4', '2.0.0-beta', '2.0.1']
PORTS = [8080, 9000, 5432, 3000]
SERVER_MODES = ['production', 'staging']
USERS = ['user-101', 'user-203', 'system-internal', 'api-key-xyz', 'guest']
REPORT_NAMES = [
    'daily_summary_report_for_all_active_users',
    'user_activity_detailed_breakdown_report_q3_final',
    'monthly_payment_failure_analysis_and_trends_report',
    'system_health_and_performance_overview_report',
    'daily_summary',
    'user_activity_report',
    'payment_failures',
    'system_health_check',
    '',
]
ERROR_NUMBERS = [500, 404, 401, 503, 1201, 1337, 429]
LOG_MESSAGES = [
    'Failed to connect to database: timeout expired while waiting for connection pool.',
    'Null pointer exception at user processing module during the final stage of the user data aggregation pipeline.',
    'API rate limit exceeded for user. The user has made too many requests in a short period of time.',
    'Authentication token is invalid or has expired. User needs to re-authenticate to get a new session token.',
    'Disk space is critically low on the primary data partition. Automated cleanup failed to run.',
    'Could not resolve external service DNS. The DNS server may be down or there is a network configuration issue.',
    'Request failed with status code 503: Service Unavailable. The upstream service is not responding.',
    'Unable to acquire lock for resource: payment-processing. The lock timeout was exceeded.',
    '',
]

HISTORY = timedelta(days=30)
SERVER_UPTIME = timedelta(hours=6)


def generate_mock_log(index: int, rng: random.Random, now: datetime) -> LogRecord:
    """Generate one record logged within the last 30 days of now."""
    logged_at = now - timedelta(seconds=rng.uniform(0, HISTORY.total_seconds()))
    query_token = ''.join(rng.choices(string.ascii_lowercase + string.digits, k=8))

    return LogRecord(
        id=f"log-{index}-{int(logged_at.timestamp() * 1000)}",
        log_date_time=logged_at,
        host_name=rng.choice(HOSTS),
        repository_path=rng.choice(REPOSITORIES),
        port_number=rng.choice(PORTS),
        version_number=rng.choice(VERSIONS),
        as_server_mode=rng.choice(SERVER_MODES),
        as_start_date_time=logged_at - SERVER_UPTIME,
        as_server_config=f"config_{rng.choice('ABC')}.json",
        user_id=rng.choice(USERS),
        report_id_name=rng.choice(REPORT_NAMES),
        error_number=rng.choice(ERROR_NUMBERS),
        xql_query_id=f"q-{query_token}",
        log_message=rng.choice(LOG_MESSAGES),
    )


def generate_mock_logs(
    count: int = 250,
    seed: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[LogRecord]:
    """Generate a list of mock records.

    Args:
        count: Number of records
        seed: Seed for reproducible output
        now: Upper bound of the generated timestamps (defaults to current UTC time)

    Returns:
        Records in generation order (not sorted by time)
    """
    rng = random.Random(seed)
    now = now or datetime.now(timezone.utc)
    return [generate_mock_log(i + 1, rng, now) for i in range(count)]
