"""
Connection health state machine.

A connection is ``active`` until consecutive fetch/parse failures reach the
configured threshold, at which point it moves to ``error`` and the engine
refuses to run it until an operator reactivates it. Any successful run
resets the failure counter.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict

from processor.models import CONNECTION_ACTIVE, CONNECTION_ERROR, Connection

logger = logging.getLogger(__name__)


def can_sync(connection: Connection) -> bool:
    return connection.status == CONNECTION_ACTIVE


def is_due(connection: Connection, now: datetime) -> bool:
    """Active and never synced, or next_sync_at not after now."""
    if not can_sync(connection):
        return False
    return connection.next_sync_at is None or connection.next_sync_at <= now


def success_updates(connection: Connection, now: datetime) -> Dict[str, Any]:
    """
    Field updates after a completed run.

    Args:
        connection: Connection that was synced
        now: Completion time

    Returns:
        Updates resetting the failure counter and scheduling the next run
    """
    return {
        'last_sync_at': now,
        'next_sync_at': now + timedelta(minutes=connection.sync_frequency_minutes),
        'error_count': 0,
        'last_error': None,
    }


def failure_updates(
    connection: Connection,
    error_message: str,
    max_error_count: int
) -> Dict[str, Any]:
    """
    Field updates after an aborted run.

    Args:
        connection: Connection whose run aborted
        error_message: Reason recorded as last_error
        max_error_count: Consecutive failures that pause the connection

    Returns:
        Updates incrementing the failure counter and, at the threshold,
        moving the connection to ``error``
    """
    error_count = connection.error_count + 1
    status = CONNECTION_ERROR if error_count >= max_error_count else CONNECTION_ACTIVE

    if status == CONNECTION_ERROR:
        logger.error(
            f"Connection {connection.id} paused after {error_count} "
            f"consecutive failures: {error_message}"
        )
    else:
        logger.warning(
            f"Connection {connection.id} failure {error_count}/{max_error_count}: "
            f"{error_message}"
        )

    return {
        'error_count': error_count,
        'last_error': error_message,
        'status': status,
    }
