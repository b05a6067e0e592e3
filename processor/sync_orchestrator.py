"""Sync orchestrator: fetch, parse, reconcile and record one connection's feed."""
import logging
import uuid
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Callable, Dict, List, Optional

from fetcher.feed_fetcher import ICalFeedFetcher
from ical.parser import parse_ical
from processor import health
from processor.config import SyncConfig
from processor.conflict_detector import (
    ConflictDetector,
    determine_conflict_type,
    is_date_in_past,
    is_valid_date_range,
)
from processor.errors import EventValidationError
from processor.models import (
    CANCELLED,
    CONFIRMED,
    RUN_ERROR,
    RUN_PARTIAL_SUCCESS,
    RUN_SUCCESS,
    SEVERITY_CRITICAL,
    SEVERITY_HIGH,
    SYNC_SYNCED,
    CalendarEvent,
    Conflict,
    Connection,
    Reservation,
    SyncResult,
    SyncRun,
)

logger = logging.getLogger(__name__)

# Per-event reconciliation outcomes
CREATED = 'created'
UPDATED = 'updated'
UNCHANGED = 'unchanged'
SKIPPED = 'skipped'
CONFLICT = 'conflict'

RESERVATION_NAMESPACE = uuid.UUID('6f1c1c3e-4b8e-4d8a-9a55-2f0b7f3f2d10')


def imported_reservation_id(connection_id: str, uid: str) -> str:
    """Deterministic reservation id for a feed UID imported through a connection."""
    return str(uuid.uuid5(RESERVATION_NAMESPACE, f"{connection_id}:{uid}"))


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _dates(check_in: date, check_out: date) -> Dict[str, str]:
    return {'check_in': check_in.isoformat(), 'check_out': check_out.isoformat()}


class SyncOrchestrator:
    """Runs one inbound iCal sync for a connection."""

    def __init__(
        self,
        connection_store,
        reservation_store,
        conflict_store,
        sync_run_store,
        fetcher: Optional[ICalFeedFetcher] = None,
        config: Optional[SyncConfig] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            connection_store: Connection Store
            reservation_store: Reservation Store
            conflict_store: Conflict store
            sync_run_store: SyncRun log store
            fetcher: Feed fetcher (built from config when omitted)
            config: Engine configuration (defaults when omitted)
            clock: Returns the current UTC time
        """
        self.config = config or SyncConfig()
        self.connection_store = connection_store
        self.reservation_store = reservation_store
        self.conflict_store = conflict_store
        self.sync_run_store = sync_run_store
        self.fetcher = fetcher or ICalFeedFetcher(
            timeout=self.config.fetch_timeout,
            max_retries=self.config.fetch_max_retries,
            user_agent=self.config.user_agent
        )
        self.detector = ConflictDetector(reservation_store)
        self.clock = clock or _utc_now

    def run(self, connection_id: str, triggered_by: str = 'system') -> SyncResult:
        """
        Sync a connection's feed into the Reservation Store.

        Args:
            connection_id: Connection to sync
            triggered_by: 'system', 'user' or 'cron'

        Returns:
            SyncResult with counts, conflicts and per-event errors
        """
        result = SyncResult()

        connection = self.connection_store.get_connection(connection_id)
        if connection is None:
            message = f"Connection not found: {connection_id}"
            logger.warning(message)
            result.errors.append(message)
            return result

        if not health.can_sync(connection):
            message = f"Connection is not active: {connection.status}"
            logger.warning(f"Refusing to sync {connection_id}: {message}")
            result.errors.append(message)
            return result

        run = SyncRun(
            id=str(uuid.uuid4()),
            connection_id=connection.id,
            started_at=self.clock(),
            sync_type='manual' if triggered_by == 'user' else 'scheduled',
            triggered_by=triggered_by
        )
        self.sync_run_store.create_run(run)
        result.sync_run_id = run.id

        logger.info(
            f"Starting sync run {run.id} for connection {connection.id} "
            f"({connection.platform}, triggered by {triggered_by})"
        )

        try:
            events = self._load_events(connection)
            existing = self._index_existing(connection)
        except Exception as e:
            logger.error(
                f"Sync run {run.id} aborted: {e}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            return self._abort(connection, run, result, e)

        today = self.clock().date()

        for event in events:
            result.items_processed += 1

            try:
                outcome = self._reconcile_event(event, connection, existing, today, result)
            except EventValidationError as e:
                logger.warning(f"Skipping event {event.uid}: {e}")
                continue
            except Exception as e:
                result.items_failed += 1
                result.errors.append(f"Event {event.uid}: {e}")
                logger.error(f"Failed to process event {event.uid}: {e}", exc_info=True)
                continue

            if outcome == CREATED:
                result.items_created += 1
            elif outcome == UPDATED:
                result.items_updated += 1

        return self._complete(connection, run, result)

    def _load_events(self, connection: Connection) -> List[CalendarEvent]:
        """Fetch and parse the feed, capping the number of events."""
        raw = self.fetcher.fetch(connection.feed_url)
        events = parse_ical(raw)

        limit = self.config.max_events_per_sync
        if len(events) > limit:
            logger.warning(
                f"Limiting sync to {limit} events (found {len(events)}); "
                f"the rest are deferred to the next run"
            )
            events = events[:limit]

        return events

    def _index_existing(self, connection: Connection) -> Dict[str, Reservation]:
        """Map external booking id to the reservations this connection imported."""
        return {
            reservation.external_booking_id: reservation
            for reservation in self.reservation_store.list_for_connection(connection.id)
            if reservation.external_booking_id
        }

    def _reconcile_event(
        self,
        event: CalendarEvent,
        connection: Connection,
        existing: Dict[str, Reservation],
        today: date,
        result: SyncResult
    ) -> str:
        """
        Reconcile one remote event with local state.

        Returns:
            One of CREATED, UPDATED, UNCHANGED, SKIPPED, CONFLICT

        Raises:
            EventValidationError: If the event's date range is not actionable
        """
        check_in, check_out = event.check_in, event.check_out

        if not is_valid_date_range(check_in, check_out):
            raise EventValidationError(
                f"Invalid date range {check_in} - {check_out}"
            )

        if is_date_in_past(check_out, today):
            logger.debug(f"Skipping past event {event.uid} ({check_out})")
            return SKIPPED

        now = self.clock()
        reservation = existing.get(event.uid)

        if reservation is not None:
            return self._reconcile_existing(
                event, connection, reservation, existing, now, result
            )

        if event.is_cancelled:
            return SKIPPED

        conflicting = self.detector.conflicting_reservations(
            connection.unit_id, check_in, check_out
        )
        if conflicting:
            self._record_conflict(
                connection, event, conflicting[0], SEVERITY_CRITICAL,
                'New booking conflicts with existing reservation', now, result
            )
            return CONFLICT

        reservation = Reservation(
            id=imported_reservation_id(connection.id, event.uid),
            unit_id=connection.unit_id,
            check_in=check_in,
            check_out=check_out,
            status=CONFIRMED,
            guest_name=event.summary or 'OTA Guest',
            channel=connection.platform,
            external_booking_id=event.uid,
            connection_id=connection.id,
            sync_status=SYNC_SYNCED,
            synced_at=now,
            metadata={
                'platform': connection.platform,
                'imported_at': now.isoformat(),
                'original_summary': event.summary,
                'ical_uid': event.uid,
            },
            created_at=now,
            updated_at=now
        )
        self.reservation_store.create_reservation(reservation)
        existing[event.uid] = reservation
        return CREATED

    def _reconcile_existing(
        self,
        event: CalendarEvent,
        connection: Connection,
        reservation: Reservation,
        existing: Dict[str, Reservation],
        now: datetime,
        result: SyncResult
    ) -> str:
        check_in, check_out = event.check_in, event.check_out

        if event.is_cancelled and reservation.status != CANCELLED:
            self.reservation_store.cancel_reservation(
                reservation.id, sync_status=SYNC_SYNCED, synced_at=now, updated_at=now
            )
            existing[event.uid] = replace(reservation, status=CANCELLED, synced_at=now)
            logger.info(f"Cancelled reservation {reservation.id} ({event.uid})")
            return UPDATED

        dates_changed = (
            reservation.check_in != check_in or reservation.check_out != check_out
        )
        if event.is_cancelled or reservation.status == CANCELLED or not dates_changed:
            # Nothing to apply; only record that the booking was seen
            self.reservation_store.update_reservation(
                reservation.id, sync_status=SYNC_SYNCED, synced_at=now
            )
            return UNCHANGED

        conflicting = self.detector.conflicting_reservations(
            connection.unit_id, check_in, check_out,
            exclude_reservation_id=reservation.id
        )
        if conflicting:
            self._record_conflict(
                connection, event, conflicting[0], SEVERITY_HIGH,
                'Date change conflicts with existing reservation', now, result,
                previous=reservation
            )
            return CONFLICT

        self.reservation_store.update_reservation(
            reservation.id,
            check_in=check_in,
            check_out=check_out,
            sync_status=SYNC_SYNCED,
            synced_at=now,
            updated_at=now
        )
        existing[event.uid] = replace(
            reservation, check_in=check_in, check_out=check_out, synced_at=now
        )
        logger.info(
            f"Moved reservation {reservation.id} to {check_in} - {check_out}"
        )
        return UPDATED

    def _record_conflict(
        self,
        connection: Connection,
        event: CalendarEvent,
        local: Reservation,
        severity: str,
        message: str,
        now: datetime,
        result: SyncResult,
        previous: Optional[Reservation] = None
    ) -> None:
        """
        Persist a conflict (unless already recorded) and surface it in the result.

        Args:
            connection: Connection being synced
            event: Remote event that conflicts
            local: First overlapping local reservation
            severity: Conflict severity
            message: Summary for the run result
            now: Detection time
            result: Result collecting conflicts
            previous: Reservation the event would have moved, for date changes
        """
        conflict_type = determine_conflict_type(
            local.check_in, local.check_out, event.check_in, event.check_out
        )
        remote_dates = _dates(event.check_in, event.check_out)

        recorded = self.conflict_store.find_unresolved(
            connection.id, event.uid, remote_dates
        )
        if recorded is None:
            conflict_data = {
                'local_dates': _dates(local.check_in, local.check_out),
                'remote_dates': remote_dates,
                'description': f"{message} for booking {event.uid}",
            }
            if previous is not None:
                conflict_data['previous_dates'] = _dates(
                    previous.check_in, previous.check_out
                )

            self.conflict_store.create_conflict(Conflict(
                id=str(uuid.uuid4()),
                unit_id=connection.unit_id,
                connection_id=connection.id,
                conflict_type=conflict_type,
                severity=severity,
                remote_booking_id=event.uid,
                local_reservation_id=local.id,
                conflict_data=conflict_data,
                detected_at=now
            ))
        else:
            logger.info(
                f"Conflict for {event.uid} already recorded as {recorded.id}"
            )

        result.conflicts.append({
            'remote_booking_id': event.uid,
            'conflict_type': conflict_type,
            'message': message,
        })

    def _complete(self, connection: Connection, run: SyncRun, result: SyncResult) -> SyncResult:
        """Record a completed run on the connection and the run log."""
        now = self.clock()
        self.connection_store.update_connection(
            connection.id, health.success_updates(connection, now)
        )

        run.status = RUN_PARTIAL_SUCCESS if result.errors else RUN_SUCCESS
        run.error_message = '; '.join(result.errors) if result.errors else None
        self._finalize(run, result, now)

        result.success = True
        logger.info(
            f"Sync run {run.id} completed: {result.items_processed} processed, "
            f"{result.items_created} created, {result.items_updated} updated, "
            f"{result.items_failed} failed, {len(result.conflicts)} conflicts"
        )
        return result

    def _abort(
        self,
        connection: Connection,
        run: SyncRun,
        result: SyncResult,
        error: Exception
    ) -> SyncResult:
        """Record a fetch/parse-level failure on the connection and the run log."""
        message = str(error) or type(error).__name__
        result.errors.append(message)

        self.connection_store.update_connection(
            connection.id,
            health.failure_updates(connection, message, self.config.max_error_count)
        )

        run.status = RUN_ERROR
        run.error_message = message
        self._finalize(run, result, self.clock())
        return result

    def _finalize(self, run: SyncRun, result: SyncResult, now: datetime) -> None:
        run.completed_at = now
        run.items_processed = result.items_processed
        run.items_created = result.items_created
        run.items_updated = result.items_updated
        run.items_failed = result.items_failed
        self.sync_run_store.finalize_run(run)
