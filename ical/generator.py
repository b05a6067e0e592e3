"""iCalendar (RFC 5545) export feed generator."""
import re
from datetime import date, datetime, timezone
from typing import Dict, List, Optional

from ical.text import CRLF, escape_text, fold_line
from processor.config import DEFAULT_UID_DOMAIN
from processor.models import (
    CANCELLED,
    CHECKED_IN,
    CONFIRMED,
    PENDING,
    Reservation,
)

PRODUCT_ID = '-//OTA Calendar Sync//Booking Calendar//EN'

# Reservations published in the export feed
EXPORTED_STATUSES = (CONFIRMED, CHECKED_IN, PENDING)

_SLUG_RE = re.compile(r'[^a-z0-9]', re.IGNORECASE)


def format_ical_date(value: date) -> str:
    """Format a date as YYYYMMDD."""
    return value.strftime('%Y%m%d')


def format_ical_datetime(value: datetime) -> str:
    """Format a timestamp as UTC YYYYMMDDTHHMMSSZ."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime('%Y%m%dT%H%M%SZ')


def map_status(status: str) -> str:
    """Map a local reservation status to an iCal STATUS value."""
    if status in (CONFIRMED, CHECKED_IN):
        return 'CONFIRMED'
    if status == CANCELLED:
        return 'CANCELLED'
    return 'TENTATIVE'


def export_uid(reservation: Reservation, uid_domain: str = DEFAULT_UID_DOMAIN) -> str:
    """
    Build the UID under which a reservation is published.

    Args:
        reservation: Reservation being exported
        uid_domain: Fixed domain suffix

    Returns:
        External booking id (or local id) with the domain suffix
    """
    return f"{reservation.external_booking_id or reservation.id}@{uid_domain}"


def _description(reservation: Reservation) -> str:
    parts = [
        f"Booking: {reservation.id}",
        f"Guest: {reservation.guest_name}",
        f"Email: {reservation.guest_email}",
        f"Guests: {reservation.guests_count}",
        f"Total: €{reservation.total_price}",
        f"Status: {reservation.status}",
    ]
    if reservation.guest_phone:
        parts.append(f"Phone: {reservation.guest_phone}")
    return '\n'.join(parts)


def generate_vevent(
    reservation: Reservation,
    unit_title: str,
    now: datetime,
    uid_domain: str = DEFAULT_UID_DOMAIN
) -> List[str]:
    """
    Generate the unfolded content lines of one VEVENT.

    Args:
        reservation: Reservation to publish
        unit_title: Unit title used in the summary
        now: Generation timestamp for DTSTAMP
        uid_domain: UID domain suffix

    Returns:
        List of content lines from BEGIN:VEVENT to END:VEVENT
    """
    created = reservation.created_at or now
    last_modified = reservation.updated_at or now
    summary = f"{unit_title} - {reservation.guest_name}"

    return [
        'BEGIN:VEVENT',
        f"UID:{escape_text(export_uid(reservation, uid_domain))}",
        f"DTSTAMP:{format_ical_datetime(now)}",
        f"CREATED:{format_ical_datetime(created)}",
        f"LAST-MODIFIED:{format_ical_datetime(last_modified)}",
        f"DTSTART;VALUE=DATE:{format_ical_date(reservation.check_in)}",
        f"DTEND;VALUE=DATE:{format_ical_date(reservation.check_out)}",
        f"SUMMARY:{escape_text(summary)}",
        f"DESCRIPTION:{escape_text(_description(reservation))}",
        f"STATUS:{map_status(reservation.status)}",
        'TRANSP:OPAQUE',
        f"ORGANIZER;CN=Bookings:mailto:noreply@{uid_domain}",
        'END:VEVENT',
    ]


def generate_ical_for_unit(
    unit_id: str,
    unit_title: str,
    reservations: List[Reservation],
    base_url: Optional[str] = None,
    now: Optional[datetime] = None,
    uid_domain: str = DEFAULT_UID_DOMAIN
) -> str:
    """
    Generate the complete iCal feed for a unit's reservations.

    Only pending, confirmed and checked-in reservations are published;
    cancelled ones are left out rather than emitted as CANCELLED.

    Args:
        unit_id: Unit identifier
        unit_title: Unit title for the calendar name and event summaries
        reservations: Reservations to consider
        base_url: Public base URL of the export endpoint (optional)
        now: Generation timestamp (defaults to current UTC time)
        uid_domain: UID domain suffix

    Returns:
        Folded iCalendar document terminated by CRLF
    """
    now = now or datetime.now(timezone.utc)

    lines = [
        'BEGIN:VCALENDAR',
        'VERSION:2.0',
        f"PRODID:{PRODUCT_ID}",
        'CALSCALE:GREGORIAN',
        'METHOD:PUBLISH',
        f"X-WR-CALNAME:{escape_text(unit_title)}",
        'X-WR-TIMEZONE:UTC',
        'X-PUBLISHED-TTL:PT1H',
    ]

    if base_url:
        lines.append(f"X-WR-CALDESC:Booking calendar for {escape_text(unit_title)}")
        lines.append(f"URL:{base_url.rstrip('/')}/ical/{unit_id}")

    for reservation in reservations:
        if reservation.status not in EXPORTED_STATUSES:
            continue
        lines.extend(generate_vevent(reservation, unit_title, now, uid_domain))

    lines.append('END:VCALENDAR')

    return CRLF.join(fold_line(line) for line in lines) + CRLF


def calendar_slug(unit_title: str) -> str:
    """Lower-case the title and replace non-alphanumerics with underscores."""
    return _SLUG_RE.sub('_', unit_title).lower()


def ical_headers(unit_title: str) -> Dict[str, str]:
    """
    HTTP headers for the export response.

    Args:
        unit_title: Unit title used to name the .ics file

    Returns:
        Header dictionary
    """
    return {
        'Content-Type': 'text/calendar; charset=utf-8',
        'Content-Disposition': f'inline; filename="{calendar_slug(unit_title)}.ics"',
        'Cache-Control': 'public, max-age=3600',
    }
