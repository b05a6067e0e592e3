"""Operator actions that close recorded conflicts."""
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from processor.errors import ConflictNotFoundError
from processor.models import CONFLICT_IGNORED, CONFLICT_RESOLVED, Conflict

logger = logging.getLogger(__name__)

KEEP_LOCAL = 'keep_local'
KEEP_REMOTE = 'keep_remote'
MANUAL_MERGE = 'manual_merge'
CANCELLED_BOTH = 'cancelled_both'

RESOLUTION_ACTIONS = (KEEP_LOCAL, KEEP_REMOTE, MANUAL_MERGE, CANCELLED_BOTH)

# Actions that give up the local reservation
_CANCELS_LOCAL = (KEEP_REMOTE, CANCELLED_BOTH)


def _load(conflict_store, conflict_id: str) -> Conflict:
    conflict = conflict_store.get_conflict(conflict_id)
    if conflict is None:
        raise ConflictNotFoundError(f"Conflict not found: {conflict_id}")
    return conflict


def resolve_conflict(
    conflict_id: str,
    action: str,
    conflict_store,
    reservation_store,
    resolved_by: Optional[str] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None
) -> Conflict:
    """
    Resolve a conflict with an operator-chosen action.

    ``keep_remote`` and ``cancelled_both`` cancel the linked local
    reservation. The remote side is not touched: importing the remote
    booking happens on the next sync, cancelling it happens on the platform.

    Args:
        conflict_id: Conflict to resolve
        action: One of RESOLUTION_ACTIONS
        conflict_store: Conflict store
        reservation_store: Reservation Store
        resolved_by: Operator identifier
        notes: Free-text notes
        now: Resolution time (defaults to current UTC time)

    Returns:
        The updated Conflict

    Raises:
        ValueError: If the action is unknown
        ConflictNotFoundError: If the conflict does not exist
    """
    if action not in RESOLUTION_ACTIONS:
        raise ValueError(f"Unknown resolution action: {action}")

    now = now or datetime.now(timezone.utc)
    conflict = _load(conflict_store, conflict_id)

    if action in _CANCELS_LOCAL and conflict.local_reservation_id:
        reservation_store.cancel_reservation(conflict.local_reservation_id, updated_at=now)
        logger.info(
            f"Cancelled local reservation {conflict.local_reservation_id} "
            f"resolving conflict {conflict_id} ({action})"
        )

    fields = {
        'status': CONFLICT_RESOLVED,
        'resolution_action': action,
        'resolved_by': resolved_by,
        'resolved_at': now,
        'notes': notes,
    }
    conflict_store.update_conflict(conflict_id, fields)

    logger.info(f"Conflict {conflict_id} resolved with {action}")
    return replace(conflict, **fields)


def ignore_conflict(
    conflict_id: str,
    conflict_store,
    resolved_by: Optional[str] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None
) -> Conflict:
    """Close a conflict without changing any reservation."""
    now = now or datetime.now(timezone.utc)
    conflict = _load(conflict_store, conflict_id)

    fields = {
        'status': CONFLICT_IGNORED,
        'resolved_by': resolved_by,
        'resolved_at': now,
        'notes': notes,
    }
    conflict_store.update_conflict(conflict_id, fields)

    logger.info(f"Conflict {conflict_id} ignored")
    return replace(conflict, **fields)
