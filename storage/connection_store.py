"""Connection Store backed by DynamoDB."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from boto3.dynamodb.conditions import Attr

from processor import health
from processor.models import CONNECTION_ACTIVE, ICAL_PLATFORMS, Connection
from storage.dynamodb_manager import (
    DynamoDBManager,
    from_iso_timestamp,
    to_iso_timestamp,
)

logger = logging.getLogger(__name__)

_TIMESTAMP_FIELDS = ('last_sync_at', 'next_sync_at', 'created_at', 'updated_at')


class ConnectionStore(DynamoDBManager):
    """Read connection configuration and update health fields."""

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        item = self.get_item(connection_id)
        if item is None:
            return None
        return self._item_to_connection(item)

    def save_connection(self, connection: Connection) -> None:
        """
        Write a connection's full configuration.

        Connections are created and edited by the host application's
        channel-setup flow; the sync engine itself only updates health and
        schedule fields through update_connection.

        Args:
            connection: Connection to write
        """
        self.put_item(self._connection_to_item(connection))

    def update_connection(self, connection_id: str, fields: Dict[str, Any]) -> None:
        """
        Apply health/schedule field updates to a connection.

        ``updated_at`` is stamped automatically.

        Args:
            connection_id: Connection identifier
            fields: Connection attribute names and new values
        """
        fields = dict(fields)
        fields.setdefault('updated_at', datetime.now(timezone.utc))

        serialized = {}
        for name, value in fields.items():
            if name in _TIMESTAMP_FIELDS:
                serialized[name] = to_iso_timestamp(value)
            else:
                serialized[name] = value

        self.update_fields(connection_id, serialized)

    def list_due_connections(
        self,
        now: datetime,
        limit: int = 50,
        platforms: Tuple[str, ...] = ICAL_PLATFORMS
    ) -> List[Connection]:
        """
        List active connections whose next sync is due.

        Connections never synced (no ``next_sync_at``) are due immediately.
        Platforms the engine cannot sync are filtered out before the limit
        is applied, since nothing ever advances their schedule.

        Args:
            now: Current time
            limit: Maximum number of connections returned
            platforms: Platforms with a syncable feed

        Returns:
            Connections ordered by next_sync_at, oldest first
        """
        items = self.scan_all(
            FilterExpression=Attr('status').eq(CONNECTION_ACTIVE)
            & Attr('platform').is_in(list(platforms))
            & (
                Attr('next_sync_at').not_exists()
                | Attr('next_sync_at').lte(to_iso_timestamp(now))
            )
        )
        connections = [
            connection
            for connection in (self._item_to_connection(item) for item in items)
            if health.is_due(connection, now)
        ]
        connections.sort(key=lambda c: to_iso_timestamp(c.next_sync_at) or '')

        logger.info(f"Found {len(connections)} connections due for sync")
        return connections[:limit]

    def _connection_to_item(self, connection: Connection) -> dict:
        return {
            'id': connection.id,
            'unit_id': connection.unit_id,
            'platform': connection.platform,
            'feed_url': connection.feed_url,
            'sync_frequency_minutes': connection.sync_frequency_minutes,
            'status': connection.status,
            'error_count': connection.error_count,
            'last_error': connection.last_error,
            'last_sync_at': to_iso_timestamp(connection.last_sync_at),
            'next_sync_at': to_iso_timestamp(connection.next_sync_at),
            'created_at': to_iso_timestamp(connection.created_at),
            'updated_at': to_iso_timestamp(connection.updated_at),
        }

    def _item_to_connection(self, item: dict) -> Connection:
        return Connection(
            id=item['id'],
            unit_id=item['unit_id'],
            platform=item['platform'],
            feed_url=item.get('feed_url', ''),
            sync_frequency_minutes=int(item.get('sync_frequency_minutes', 30)),
            status=item.get('status', CONNECTION_ACTIVE),
            error_count=int(item.get('error_count', 0)),
            last_error=item.get('last_error'),
            last_sync_at=from_iso_timestamp(item.get('last_sync_at')),
            next_sync_at=from_iso_timestamp(item.get('next_sync_at')),
            created_at=from_iso_timestamp(item.get('created_at')),
            updated_at=from_iso_timestamp(item.get('updated_at')),
        )
