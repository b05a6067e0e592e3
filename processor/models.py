"""Data models for calendar synchronization."""
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

EventDate = Union[date, datetime]

# Reservation statuses
PENDING = 'pending'
CONFIRMED = 'confirmed'
CHECKED_IN = 'checked_in'
CHECKED_OUT = 'checked_out'
CANCELLED = 'cancelled'

# Statuses that occupy a unit's calendar
ACTIVE_RESERVATION_STATUSES = (PENDING, CONFIRMED, CHECKED_IN)

# Connection statuses
CONNECTION_ACTIVE = 'active'
CONNECTION_PAUSED = 'paused'
CONNECTION_ERROR = 'error'

# Platforms that publish an iCal feed
ICAL_PLATFORMS = ('airbnb_ical', 'vrbo_ical', 'expedia_ical')

# Reservation sync statuses
SYNC_SYNCED = 'synced'

# Conflict types, severities and statuses
DOUBLE_BOOKING = 'double_booking'
DATE_OVERLAP = 'date_overlap'

SEVERITY_HIGH = 'high'
SEVERITY_CRITICAL = 'critical'

CONFLICT_UNRESOLVED = 'unresolved'
CONFLICT_RESOLVED = 'resolved'
CONFLICT_IGNORED = 'ignored'

# Sync run statuses
RUN_SUCCESS = 'success'
RUN_PARTIAL_SUCCESS = 'partial_success'
RUN_ERROR = 'error'


@dataclass
class CalendarEvent:
    """VEVENT parsed from a remote feed."""
    uid: str
    start: EventDate
    end: EventDate
    summary: str = ''
    status: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    created: Optional[EventDate] = None
    last_modified: Optional[EventDate] = None
    organizer: Optional[str] = None
    attendees: List[str] = field(default_factory=list)
    extra: Dict[str, str] = field(default_factory=dict)

    @property
    def all_day(self) -> bool:
        return not isinstance(self.start, datetime)

    @property
    def check_in(self) -> date:
        return _date_part(self.start)

    @property
    def check_out(self) -> date:
        return _date_part(self.end)

    @property
    def is_cancelled(self) -> bool:
        return (self.status or '').upper() == 'CANCELLED'


@dataclass
class Connection:
    """External calendar connection for one unit."""
    id: str
    unit_id: str
    platform: str
    feed_url: str
    sync_frequency_minutes: int = 30
    status: str = CONNECTION_ACTIVE
    error_count: int = 0
    last_error: Optional[str] = None
    last_sync_at: Optional[datetime] = None
    next_sync_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Reservation:
    """Locally held reservation."""
    id: str
    unit_id: str
    check_in: date
    check_out: date
    status: str = PENDING
    guest_name: str = ''
    guest_email: str = ''
    guest_phone: Optional[str] = None
    guests_count: int = 1
    total_price: Decimal = Decimal('0')
    channel: str = 'direct'
    external_booking_id: Optional[str] = None
    connection_id: Optional[str] = None
    sync_status: Optional[str] = None
    synced_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_RESERVATION_STATUSES


@dataclass
class Conflict:
    """Booking conflict detected during reconciliation."""
    id: str
    unit_id: str
    connection_id: str
    conflict_type: str
    severity: str
    remote_booking_id: str
    local_reservation_id: Optional[str] = None
    conflict_data: Dict[str, Any] = field(default_factory=dict)
    status: str = CONFLICT_UNRESOLVED
    detected_at: Optional[datetime] = None
    resolution_action: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    notes: Optional[str] = None


@dataclass
class SyncRun:
    """Log record of one orchestrator invocation."""
    id: str
    connection_id: str
    started_at: datetime
    sync_type: str = 'scheduled'
    direction: str = 'inbound'
    triggered_by: str = 'system'
    status: str = RUN_SUCCESS
    completed_at: Optional[datetime] = None
    items_processed: int = 0
    items_created: int = 0
    items_updated: int = 0
    items_failed: int = 0
    error_message: Optional[str] = None


@dataclass
class SyncResult:
    """Result of sync operation."""
    success: bool = False
    sync_run_id: Optional[str] = None
    items_processed: int = 0
    items_created: int = 0
    items_updated: int = 0
    items_failed: int = 0
    conflicts: List[Dict[str, str]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def _date_part(value: EventDate) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value
