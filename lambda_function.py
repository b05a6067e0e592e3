"""AWS Lambda handler for OTA calendar sync and iCal export."""
import json
import logging
import os
import time
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Dict

import boto3

from ical.generator import generate_ical_for_unit, ical_headers
from processor.config import SyncConfig
from processor.models import ICAL_PLATFORMS
from processor.sync_orchestrator import SyncOrchestrator
from storage.conflict_store import ConflictStore
from storage.connection_store import ConnectionStore
from storage.reservation_store import ReservationStore
from storage.sync_run_store import SyncRunStore
from storage.unit_store import UnitStore

# LogRecord attributes that are not user-supplied ``extra`` fields
_RESERVED_ATTRS = set(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {'message'}


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including any ``extra`` fields."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'body': json.dumps(body, default=str)
    }


def build_orchestrator(config: SyncConfig, dynamodb=None) -> SyncOrchestrator:
    """
    Wire the stores and fetcher into an orchestrator.

    Args:
        config: Engine configuration
        dynamodb: boto3 DynamoDB resource shared by all stores

    Returns:
        SyncOrchestrator instance
    """
    dynamodb = dynamodb or boto3.resource('dynamodb')
    return SyncOrchestrator(
        connection_store=ConnectionStore(config.connections_table, dynamodb),
        reservation_store=ReservationStore(config.reservations_table, dynamodb),
        conflict_store=ConflictStore(config.conflicts_table, dynamodb),
        sync_run_store=SyncRunStore(config.sync_runs_table, dynamodb),
        config=config
    )


def run_scheduled_sync(config: SyncConfig) -> Dict[str, Any]:
    """
    Sync every connection that is due, oldest first.

    A failure on one connection never stops the batch.

    Args:
        config: Engine configuration

    Returns:
        Response dict with per-connection results
    """
    logger = logging.getLogger(__name__)

    orchestrator = build_orchestrator(config)
    now = datetime.now(timezone.utc)
    connections = orchestrator.connection_store.list_due_connections(
        now, limit=config.scheduler_batch_size
    )

    if not connections:
        logger.info("No connections to sync")
        return _response(200, {
            'success': True,
            'message': 'No connections to sync',
            'synced': 0
        })

    results = []
    success_count = 0
    error_count = 0

    for connection in connections:
        if connection.platform not in ICAL_PLATFORMS:
            logger.warning(
                f"Unsupported platform {connection.platform} for connection {connection.id}"
            )
            continue

        try:
            logger.info(f"Syncing connection {connection.id} ({connection.platform})")
            sync_result = orchestrator.run(connection.id, 'cron')
        except Exception as e:
            error_count += 1
            logger.error(
                f"Error syncing connection {connection.id}: {str(e)}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            results.append({
                'connection_id': connection.id,
                'platform': connection.platform,
                'success': False,
                'error': str(e)
            })
            continue

        if sync_result.success:
            success_count += 1
        else:
            error_count += 1
            logger.error(f"Sync failed for {connection.id}: {sync_result.errors}")

        results.append({
            'connection_id': connection.id,
            'platform': connection.platform,
            'success': sync_result.success,
            'items_processed': sync_result.items_processed,
            'items_created': sync_result.items_created,
            'items_updated': sync_result.items_updated,
            'items_failed': sync_result.items_failed,
            'conflicts': len(sync_result.conflicts)
        })

    return _response(200, {
        'success': True,
        'message': f"Synced {len(results)} connections",
        'synced': len(results),
        'successful': success_count,
        'failed': error_count,
        'results': results
    })


def run_manual_sync(config: SyncConfig, connection_id: str) -> Dict[str, Any]:
    """
    Sync one connection on operator request.

    Args:
        config: Engine configuration
        connection_id: Connection to sync

    Returns:
        Response dict carrying the SyncResult
    """
    orchestrator = build_orchestrator(config)
    sync_result = orchestrator.run(connection_id, 'user')

    if sync_result.sync_run_id is None:
        # Refused before a run was recorded (missing or paused connection)
        status_code = 409
    elif sync_result.success:
        status_code = 200
    else:
        status_code = 500

    return _response(status_code, asdict(sync_result))


def export_handler(event: Dict[str, Any], config: SyncConfig) -> Dict[str, Any]:
    """
    Serve a unit's reservations as a public iCal feed.

    Args:
        event: API Gateway proxy event with ``pathParameters.unit_id``
        config: Engine configuration

    Returns:
        API Gateway proxy response
    """
    logger = logging.getLogger(__name__)

    unit_id = (event.get('pathParameters') or {}).get('unit_id')
    if not unit_id:
        return _response(400, {'error': 'Unit ID required'})

    try:
        dynamodb = boto3.resource('dynamodb')
        unit = UnitStore(config.units_table, dynamodb).get_unit(unit_id)

        if unit is None:
            return _response(404, {'error': 'Unit not found'})
        if unit['status'] != 'active':
            return _response(403, {'error': 'Unit is not active'})

        now = datetime.now(timezone.utc)
        reservations = ReservationStore(
            config.reservations_table, dynamodb
        ).list_exportable_for_unit(unit_id, now.date())

        ical_data = generate_ical_for_unit(
            unit_id,
            unit['title'],
            reservations,
            base_url=config.base_url,
            now=now,
            uid_domain=config.uid_domain
        )

        logger.info(f"Exported {len(reservations)} reservations for unit {unit_id}")
        return {
            'statusCode': 200,
            'headers': ical_headers(unit['title']),
            'body': ical_data
        }

    except Exception as e:
        logger.error(
            f"iCal export failed: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _response(500, {
            'error': 'Failed to generate iCal feed',
            'message': str(e)
        })


def is_http_request(event: Dict[str, Any]) -> bool:
    """True for API Gateway REST (v1) and HTTP API (v2) proxy events."""
    return 'httpMethod' in event or 'requestContext' in event


def is_scheduled_event(event: Dict[str, Any]) -> bool:
    """True for the EventBridge schedule that drives the cron batch."""
    return event.get('source') == 'aws.events'


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function.

    Routes API Gateway requests (REST or HTTP API) to the iCal export,
    events carrying a ``connection_id`` to a manual sync, and EventBridge
    scheduled events to a sync of all due connections. Anything else is
    rejected with 400.

    Args:
        event: Invocation payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and body
    """
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    config = SyncConfig.from_env()

    if is_http_request(event):
        return export_handler(event, config)

    connection_id = event.get('connection_id')
    if not connection_id and not is_scheduled_event(event):
        logger.warning(
            "Unrecognized invocation payload",
            extra={'event_keys': sorted(event)}
        )
        return _response(400, {'error': 'Unrecognized event'})

    start_time = time.time()
    logger.info(
        "Lambda execution started",
        extra={'connection_id': connection_id, 'trigger': 'manual' if connection_id else 'schedule'}
    )

    try:
        if connection_id:
            response = run_manual_sync(config, connection_id)
        else:
            response = run_scheduled_sync(config)

    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return _response(500, {
            'message': 'Sync failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })

    duration = time.time() - start_time
    logger.info(
        "Lambda execution completed",
        extra={'duration_seconds': round(duration, 2), 'status_code': response['statusCode']}
    )
    return response
