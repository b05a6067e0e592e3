"""Date-overlap conflict detection against a unit's reservations."""
import logging
from datetime import date
from typing import List, Optional

from processor.models import DATE_OVERLAP, DOUBLE_BOOKING, Reservation

logger = logging.getLogger(__name__)


def ranges_overlap(
    a_start: date,
    a_end: date,
    b_start: date,
    b_end: date
) -> bool:
    """
    Check whether two half-open ranges [start, end) overlap.

    A check-out equal to another booking's check-in is not an overlap.
    """
    return a_start < b_end and b_start < a_end


def determine_conflict_type(
    local_check_in: date,
    local_check_out: date,
    remote_check_in: date,
    remote_check_out: date
) -> str:
    """
    Classify a conflict.

    Args:
        local_check_in: Local reservation check-in
        local_check_out: Local reservation check-out
        remote_check_in: Remote booking check-in
        remote_check_out: Remote booking check-out

    Returns:
        'double_booking' when both ranges are identical, else 'date_overlap'
    """
    if local_check_in == remote_check_in and local_check_out == remote_check_out:
        return DOUBLE_BOOKING
    return DATE_OVERLAP


def is_valid_date_range(check_in: date, check_out: date) -> bool:
    """Check-out must be strictly after check-in."""
    return check_out > check_in


def is_date_in_past(value: date, today: date) -> bool:
    return value < today


class ConflictDetector:
    """Finds active reservations of a unit that overlap a date range."""

    def __init__(self, reservation_store):
        """
        Initialize the detector.

        Args:
            reservation_store: Store exposing list_active_for_unit(unit_id)
        """
        self.reservation_store = reservation_store

    def conflicting_reservations(
        self,
        unit_id: str,
        check_in: date,
        check_out: date,
        exclude_reservation_id: Optional[str] = None
    ) -> List[Reservation]:
        """
        List active reservations overlapping [check_in, check_out).

        Only pending, confirmed and checked-in reservations are considered.

        Args:
            unit_id: Unit to check
            check_in: Range start
            check_out: Range end (exclusive)
            exclude_reservation_id: Reservation to leave out, e.g. the one being moved

        Returns:
            Overlapping reservations sorted by check-in
        """
        conflicts = [
            reservation
            for reservation in self.reservation_store.list_active_for_unit(unit_id)
            if reservation.is_active
            and reservation.id != exclude_reservation_id
            and ranges_overlap(
                reservation.check_in, reservation.check_out, check_in, check_out
            )
        ]
        conflicts.sort(key=lambda r: (r.check_in, r.check_out, r.id))

        if conflicts:
            logger.info(
                f"{len(conflicts)} reservation(s) on unit {unit_id} overlap "
                f"{check_in} - {check_out}"
            )
        return conflicts

    def has_conflict(
        self,
        unit_id: str,
        check_in: date,
        check_out: date,
        exclude_reservation_id: Optional[str] = None
    ) -> bool:
        return bool(self.conflicting_reservations(
            unit_id, check_in, check_out, exclude_reservation_id
        ))
