"""Reservation Store backed by DynamoDB."""
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from boto3.dynamodb.conditions import Attr

from processor.models import ACTIVE_RESERVATION_STATUSES, CANCELLED, Reservation
from storage.dynamodb_manager import (
    DynamoDBManager,
    from_iso_date,
    from_iso_timestamp,
    to_iso_date,
    to_iso_timestamp,
)

logger = logging.getLogger(__name__)

UNIT_INDEX = 'unit-index'
CONNECTION_INDEX = 'connection-index'


class ReservationStore(DynamoDBManager):
    """Create, update and query reservations by unit or connection."""

    def get_reservation(self, reservation_id: str) -> Optional[Reservation]:
        item = self.get_item(reservation_id)
        if item is None:
            return None
        return self._item_to_reservation(item)

    def create_reservation(self, reservation: Reservation) -> None:
        """
        Insert a new reservation.

        The write is conditional on the id being unused, so replaying a
        create with the same deterministic id never produces a duplicate.

        Args:
            reservation: Reservation to insert

        Raises:
            PersistenceError: If the id already exists or the write fails
        """
        self.put_item(self._reservation_to_item(reservation), only_if_new=True)
        logger.info(
            f"Created reservation {reservation.id} for unit {reservation.unit_id} "
            f"({reservation.check_in} - {reservation.check_out})"
        )

    def update_reservation(self, reservation_id: str, **fields) -> None:
        """
        Update selected reservation attributes.

        Dates and timestamps are serialized the same way create does.

        Args:
            reservation_id: Reservation identifier
            **fields: Reservation attribute names and new values
        """
        self.update_fields(reservation_id, self._serialize_fields(fields))

    def cancel_reservation(self, reservation_id: str, **fields) -> None:
        """Set a reservation's status to cancelled, never deleting it."""
        self.update_reservation(reservation_id, status=CANCELLED, **fields)

    def list_for_unit(
        self,
        unit_id: str,
        statuses: Optional[tuple] = None
    ) -> List[Reservation]:
        """
        List reservations of one unit.

        Args:
            unit_id: Unit identifier
            statuses: Only return reservations in these statuses

        Returns:
            List of Reservation objects sorted by check-in
        """
        kwargs = {}
        if statuses:
            kwargs['FilterExpression'] = Attr('status').is_in(list(statuses))

        items = self.query_index(UNIT_INDEX, 'unit_id', unit_id, **kwargs)
        reservations = [self._item_to_reservation(item) for item in items]
        return sorted(reservations, key=lambda r: (r.check_in, r.check_out, r.id))

    def list_active_for_unit(self, unit_id: str) -> List[Reservation]:
        """List pending, confirmed and checked-in reservations of a unit."""
        return self.list_for_unit(unit_id, ACTIVE_RESERVATION_STATUSES)

    def list_exportable_for_unit(self, unit_id: str, today: date) -> List[Reservation]:
        """
        List active reservations whose check-out is today or later.

        Args:
            unit_id: Unit identifier
            today: Current date

        Returns:
            Reservations sorted by check-in
        """
        return [
            reservation for reservation in self.list_active_for_unit(unit_id)
            if reservation.check_out >= today
        ]

    def list_for_connection(self, connection_id: str) -> List[Reservation]:
        """List every reservation imported through one connection."""
        items = self.query_index(CONNECTION_INDEX, 'connection_id', connection_id)
        return [self._item_to_reservation(item) for item in items]

    def _serialize_fields(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        serialized = {}
        for name, value in fields.items():
            if isinstance(value, datetime):
                serialized[name] = to_iso_timestamp(value)
            elif isinstance(value, date):
                serialized[name] = to_iso_date(value)
            else:
                serialized[name] = value
        return serialized

    def _reservation_to_item(self, reservation: Reservation) -> dict:
        """
        Convert Reservation object to DynamoDB item.

        Args:
            reservation: Reservation object

        Returns:
            DynamoDB item dictionary
        """
        return {
            'id': reservation.id,
            'unit_id': reservation.unit_id,
            'check_in': to_iso_date(reservation.check_in),
            'check_out': to_iso_date(reservation.check_out),
            'status': reservation.status,
            'guest_name': reservation.guest_name,
            'guest_email': reservation.guest_email,
            'guest_phone': reservation.guest_phone,
            'guests_count': reservation.guests_count,
            'total_price': Decimal(str(reservation.total_price)),
            'channel': reservation.channel,
            'external_booking_id': reservation.external_booking_id,
            'connection_id': reservation.connection_id,
            'sync_status': reservation.sync_status,
            'synced_at': to_iso_timestamp(reservation.synced_at),
            'metadata': reservation.metadata or None,
            'created_at': to_iso_timestamp(reservation.created_at),
            'updated_at': to_iso_timestamp(reservation.updated_at),
        }

    def _item_to_reservation(self, item: dict) -> Reservation:
        """
        Convert DynamoDB item to Reservation object.

        Args:
            item: DynamoDB item dictionary

        Returns:
            Reservation object
        """
        return Reservation(
            id=item['id'],
            unit_id=item['unit_id'],
            check_in=from_iso_date(item['check_in']),
            check_out=from_iso_date(item['check_out']),
            status=item.get('status', 'pending'),
            guest_name=item.get('guest_name', ''),
            guest_email=item.get('guest_email', ''),
            guest_phone=item.get('guest_phone'),
            guests_count=int(item.get('guests_count', 1)),
            total_price=Decimal(item.get('total_price', 0)),
            channel=item.get('channel', 'direct'),
            external_booking_id=item.get('external_booking_id'),
            connection_id=item.get('connection_id'),
            sync_status=item.get('sync_status'),
            synced_at=from_iso_timestamp(item.get('synced_at')),
            metadata=dict(item.get('metadata') or {}),
            created_at=from_iso_timestamp(item.get('created_at')),
            updated_at=from_iso_timestamp(item.get('updated_at')),
        )
