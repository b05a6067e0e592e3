"""Conflict persistence backed by DynamoDB."""
import logging
from typing import Any, Dict, List, Optional

from boto3.dynamodb.conditions import Attr

from processor.models import CONFLICT_UNRESOLVED, Conflict
from storage.dynamodb_manager import (
    DynamoDBManager,
    from_iso_timestamp,
    to_iso_timestamp,
)

logger = logging.getLogger(__name__)

CONNECTION_INDEX = 'connection-index'


class ConflictStore(DynamoDBManager):
    """Record conflicts and their operator resolution. Conflicts are never deleted."""

    def create_conflict(self, conflict: Conflict) -> None:
        self.put_item(self._conflict_to_item(conflict), only_if_new=True)
        logger.warning(
            f"Recorded {conflict.conflict_type} conflict {conflict.id} for "
            f"remote booking {conflict.remote_booking_id} on unit {conflict.unit_id}"
        )

    def get_conflict(self, conflict_id: str) -> Optional[Conflict]:
        item = self.get_item(conflict_id)
        if item is None:
            return None
        return self._item_to_conflict(item)

    def update_conflict(self, conflict_id: str, fields: Dict[str, Any]) -> None:
        serialized = {
            name: to_iso_timestamp(value) if name == 'resolved_at' else value
            for name, value in fields.items()
        }
        self.update_fields(conflict_id, serialized)

    def list_for_connection(
        self,
        connection_id: str,
        status: Optional[str] = None
    ) -> List[Conflict]:
        """
        List conflicts raised by one connection.

        Args:
            connection_id: Connection identifier
            status: Only return conflicts in this status

        Returns:
            Conflicts, most recently detected first
        """
        kwargs = {}
        if status:
            kwargs['FilterExpression'] = Attr('status').eq(status)

        items = self.query_index(
            CONNECTION_INDEX, 'connection_id', connection_id, **kwargs
        )
        conflicts = [self._item_to_conflict(item) for item in items]
        conflicts.sort(
            key=lambda c: to_iso_timestamp(c.detected_at) or '', reverse=True
        )
        return conflicts

    def find_unresolved(
        self,
        connection_id: str,
        remote_booking_id: str,
        remote_dates: Optional[Dict[str, str]] = None
    ) -> Optional[Conflict]:
        """
        Return the unresolved conflict already recorded for a remote booking.

        Args:
            connection_id: Connection identifier
            remote_booking_id: Feed UID
            remote_dates: When given, the recorded remote dates must match too

        Returns:
            Matching Conflict or None
        """
        for conflict in self.list_for_connection(connection_id, CONFLICT_UNRESOLVED):
            if conflict.remote_booking_id != remote_booking_id:
                continue
            if remote_dates is not None and (
                conflict.conflict_data.get('remote_dates') != remote_dates
            ):
                continue
            return conflict
        return None

    def _conflict_to_item(self, conflict: Conflict) -> dict:
        return {
            'id': conflict.id,
            'unit_id': conflict.unit_id,
            'connection_id': conflict.connection_id,
            'conflict_type': conflict.conflict_type,
            'severity': conflict.severity,
            'local_reservation_id': conflict.local_reservation_id,
            'remote_booking_id': conflict.remote_booking_id,
            'conflict_data': conflict.conflict_data,
            'status': conflict.status,
            'detected_at': to_iso_timestamp(conflict.detected_at),
            'resolution_action': conflict.resolution_action,
            'resolved_by': conflict.resolved_by,
            'resolved_at': to_iso_timestamp(conflict.resolved_at),
            'notes': conflict.notes,
        }

    def _item_to_conflict(self, item: dict) -> Conflict:
        return Conflict(
            id=item['id'],
            unit_id=item['unit_id'],
            connection_id=item['connection_id'],
            conflict_type=item['conflict_type'],
            severity=item['severity'],
            remote_booking_id=item['remote_booking_id'],
            local_reservation_id=item.get('local_reservation_id'),
            conflict_data=dict(item.get('conflict_data') or {}),
            status=item.get('status', CONFLICT_UNRESOLVED),
            detected_at=from_iso_timestamp(item.get('detected_at')),
            resolution_action=item.get('resolution_action'),
            resolved_by=item.get('resolved_by'),
            resolved_at=from_iso_timestamp(item.get('resolved_at')),
            notes=item.get('notes'),
        )
