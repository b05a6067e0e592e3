"""
Shared pytest fixtures, DynamoDB tables and iCal feed builders.
"""
from datetime import date, datetime, timezone
from unittest.mock import Mock

import boto3
import pytest
from moto import mock_aws

from processor.config import SyncConfig
from processor.models import Connection, Reservation
from processor.sync_orchestrator import SyncOrchestrator
from storage.conflict_store import ConflictStore
from storage.connection_store import ConnectionStore
from storage.reservation_store import ReservationStore
from storage.sync_run_store import SyncRunStore
from storage.unit_store import UnitStore

NOW = datetime(2025, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
UNIT_ID = 'unit-1'
CONNECTION_ID = 'conn-1'
FEED_URL = 'https://www.airbnb.com/calendar/ical/123.ics'


def make_vevent(
    uid: str,
    start: str = '20250601',
    end: str = '20250605',
    status: str = None,
    summary: str = 'Reserved'
) -> str:
    """Return an all-day VEVENT (no VCALENDAR wrapper)."""
    lines = [
        'BEGIN:VEVENT',
        f'UID:{uid}',
        f'DTSTART;VALUE=DATE:{start}',
        f'DTEND;VALUE=DATE:{end}',
        f'SUMMARY:{summary}',
    ]
    if status:
        lines.append(f'STATUS:{status}')
    lines.append('END:VEVENT')
    return '\r\n'.join(lines) + '\r\n'


def make_feed(*vevents: str) -> str:
    """Wrap VEVENT blocks in a VCALENDAR."""
    return (
        'BEGIN:VCALENDAR\r\n'
        'VERSION:2.0\r\n'
        'PRODID:-//Airbnb Inc//Hosting Calendar 1.0//EN\r\n'
        + ''.join(vevents)
        + 'END:VCALENDAR\r\n'
    )


def make_reservation(
    reservation_id: str,
    check_in: date,
    check_out: date,
    status: str = 'confirmed',
    **kwargs
) -> Reservation:
    kwargs.setdefault('unit_id', UNIT_ID)
    kwargs.setdefault('guest_name', 'Jane Doe')
    kwargs.setdefault('guest_email', 'jane@example.com')
    return Reservation(
        id=reservation_id,
        check_in=check_in,
        check_out=check_out,
        status=status,
        **kwargs
    )


def create_tables(dynamodb, config: SyncConfig) -> None:
    """Create every table the engine uses, with its indexes."""
    def create(name, indexes=(), extra_attributes=()):
        attributes = {'id'}
        gsis = []
        for index_name, hash_key, range_key in indexes:
            attributes.add(hash_key)
            key_schema = [{'AttributeName': hash_key, 'KeyType': 'HASH'}]
            if range_key:
                attributes.add(range_key)
                key_schema.append({'AttributeName': range_key, 'KeyType': 'RANGE'})
            gsis.append({
                'IndexName': index_name,
                'KeySchema': key_schema,
                'Projection': {'ProjectionType': 'ALL'}
            })

        kwargs = dict(
            TableName=name,
            KeySchema=[{'AttributeName': 'id', 'KeyType': 'HASH'}],
            AttributeDefinitions=[
                {'AttributeName': attribute, 'AttributeType': 'S'}
                for attribute in sorted(attributes)
            ],
            BillingMode='PAY_PER_REQUEST'
        )
        if gsis:
            kwargs['GlobalSecondaryIndexes'] = gsis
        dynamodb.create_table(**kwargs)

    create(config.reservations_table, [
        ('unit-index', 'unit_id', None),
        ('connection-index', 'connection_id', None),
    ])
    create(config.connections_table)
    create(config.conflicts_table, [('connection-index', 'connection_id', None)])
    create(config.sync_runs_table, [('connection-index', 'connection_id', 'started_at')])
    create(config.units_table)


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake AWS credentials so boto3 never reaches a real account."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def config():
    return SyncConfig(fetch_max_retries=1)


@pytest.fixture
def dynamodb(aws_credentials, config):
    """Mock DynamoDB resource with all tables created."""
    with mock_aws():
        resource = boto3.resource('dynamodb', region_name='us-east-1')
        create_tables(resource, config)
        yield resource


@pytest.fixture
def reservation_store(dynamodb, config):
    return ReservationStore(config.reservations_table, dynamodb)


@pytest.fixture
def connection_store(dynamodb, config):
    return ConnectionStore(config.connections_table, dynamodb)


@pytest.fixture
def conflict_store(dynamodb, config):
    return ConflictStore(config.conflicts_table, dynamodb)


@pytest.fixture
def sync_run_store(dynamodb, config):
    return SyncRunStore(config.sync_runs_table, dynamodb)


@pytest.fixture
def unit_store(dynamodb, config):
    return UnitStore(config.units_table, dynamodb)


@pytest.fixture
def connection(connection_store):
    """Active Airbnb connection for UNIT_ID, saved in the store."""
    connection = Connection(
        id=CONNECTION_ID,
        unit_id=UNIT_ID,
        platform='airbnb_ical',
        feed_url=FEED_URL,
        sync_frequency_minutes=30
    )
    connection_store.save_connection(connection)
    return connection


@pytest.fixture
def fetcher():
    """Fetcher stub; tests set fetch.return_value or side_effect."""
    fetcher = Mock()
    fetcher.fetch.return_value = make_feed()
    return fetcher


@pytest.fixture
def orchestrator(
    connection_store,
    reservation_store,
    conflict_store,
    sync_run_store,
    fetcher,
    config
):
    return SyncOrchestrator(
        connection_store=connection_store,
        reservation_store=reservation_store,
        conflict_store=conflict_store,
        sync_run_store=sync_run_store,
        fetcher=fetcher,
        config=config,
        clock=lambda: NOW
    )
