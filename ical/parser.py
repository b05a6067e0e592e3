"""iCalendar (RFC 5545) feed parser."""
import logging
import re
from datetime import date, datetime, timezone
from typing import Callable, Dict, List, Optional

from ical.text import unescape_text, unfold_lines
from processor.errors import FormatError
from processor.models import CalendarEvent, EventDate

logger = logging.getLogger(__name__)

_LINE_SPLIT_RE = re.compile(r'\r?\n')
_DATE_RE = re.compile(r'^(\d{4})(\d{2})(\d{2})$')
_DATETIME_RE = re.compile(r'^(\d{4})(\d{2})(\d{2})T(\d{2})(\d{2})(\d{2})(Z?)$')


def has_calendar_wrapper(ical_data: str) -> bool:
    """Return True when the text carries a BEGIN/END:VCALENDAR wrapper."""
    return 'BEGIN:VCALENDAR' in ical_data and 'END:VCALENDAR' in ical_data


def parse_ical_date(value: str, params: Optional[Dict[str, str]] = None) -> EventDate:
    """
    Parse an iCal DATE or DATE-TIME value.

    Handles ``YYYYMMDD`` (all-day), ``YYYYMMDDTHHMMSS`` (floating, returned
    naive) and ``YYYYMMDDTHHMMSSZ`` (UTC, returned timezone-aware). TZID
    parameters are ignored.

    Args:
        value: Raw property value
        params: Upper-cased property parameters

    Returns:
        date for all-day values, datetime otherwise

    Raises:
        ValueError: If the value matches neither format
    """
    value = value.strip()
    params = params or {}

    match = _DATE_RE.match(value)
    if match:
        year, month, day = (int(part) for part in match.groups())
        return date(year, month, day)

    if params.get('VALUE') == 'DATE':
        raise ValueError(f"Expected YYYYMMDD for VALUE=DATE, got '{value}'")

    match = _DATETIME_RE.match(value)
    if match:
        year, month, day, hour, minute, second = (
            int(part) for part in match.groups()[:6]
        )
        tzinfo = timezone.utc if match.group(7) else None
        return datetime(year, month, day, hour, minute, second, tzinfo=tzinfo)

    raise ValueError(f"Unrecognized date value '{value}'")


def _split_property(line: str):
    """Split a content line into (name, params, raw value)."""
    colon_index = line.find(':')
    if colon_index == -1:
        return None

    head = line[:colon_index]
    raw_value = line[colon_index + 1:]

    parts = head.split(';')
    name = parts[0].strip().upper()
    params = {}
    for param in parts[1:]:
        key, _, param_value = param.partition('=')
        params[key.strip().upper()] = param_value.strip().strip('"').upper()

    return name, params, raw_value


def _set_text(attribute: str) -> Callable:
    def setter(fields, raw_value, params):
        fields[attribute] = unescape_text(raw_value.strip())
    return setter


def _set_date(attribute: str) -> Callable:
    def setter(fields, raw_value, params):
        fields[attribute] = parse_ical_date(raw_value, params)
    return setter


def _add_attendee(fields, raw_value, params):
    fields.setdefault('attendees', []).append(unescape_text(raw_value.strip()))


# Normalized property name -> setter(fields, raw_value, params)
PROPERTY_DECODERS: Dict[str, Callable] = {
    'UID': _set_text('uid'),
    'SUMMARY': _set_text('summary'),
    'DTSTART': _set_date('start'),
    'DTEND': _set_date('end'),
    'STATUS': _set_text('status'),
    'DESCRIPTION': _set_text('description'),
    'LOCATION': _set_text('location'),
    'CREATED': _set_date('created'),
    'LAST-MODIFIED': _set_date('last_modified'),
    'ORGANIZER': _set_text('organizer'),
    'ATTENDEE': _add_attendee,
}

REQUIRED_FIELDS = ('uid', 'start', 'end')


def parse_vevent(lines: List[str]) -> Optional[CalendarEvent]:
    """
    Build a CalendarEvent from the content lines of one VEVENT block.

    Args:
        lines: Unfolded lines between BEGIN:VEVENT and END:VEVENT

    Returns:
        CalendarEvent, or None if a required property is missing or invalid
    """
    fields = {}
    extra = {}
    nested_depth = 0

    for line in lines:
        if not line.strip():
            continue

        upper = line.upper()
        if upper.startswith('BEGIN:'):
            nested_depth += 1
            continue
        if upper.startswith('END:'):
            nested_depth = max(nested_depth - 1, 0)
            continue
        if nested_depth:
            # VALARM and other sub-components
            continue

        parsed = _split_property(line)
        if parsed is None:
            continue
        name, params, raw_value = parsed

        decoder = PROPERTY_DECODERS.get(name)
        if decoder is None:
            extra[name.lower()] = unescape_text(raw_value.strip())
            continue

        try:
            decoder(fields, raw_value, params)
        except ValueError as e:
            logger.warning(f"Invalid {name} value in VEVENT: {e}")

    missing = [name for name in REQUIRED_FIELDS if not fields.get(name)]
    if missing:
        logger.warning(
            f"Skipping VEVENT {fields.get('uid', '<no uid>')}: "
            f"missing required fields {', '.join(missing)}"
        )
        return None

    return CalendarEvent(extra=extra, **fields)


def parse_ical(ical_data: str) -> List[CalendarEvent]:
    """
    Parse iCal data and extract all VEVENT components.

    Malformed events are dropped with a warning; the rest are returned in
    feed order without deduplication.

    Args:
        ical_data: Raw iCalendar text

    Returns:
        List of CalendarEvent objects

    Raises:
        FormatError: If the VCALENDAR wrapper is missing
    """
    if not ical_data or not has_calendar_wrapper(ical_data):
        raise FormatError('Invalid iCalendar format: missing VCALENDAR wrapper')

    lines = _LINE_SPLIT_RE.split(unfold_lines(ical_data))

    events = []
    current = None

    for line in lines:
        marker = line.strip().upper()

        if marker == 'BEGIN:VEVENT':
            if current is not None:
                logger.warning('Dropping unterminated VEVENT block')
            current = []
        elif marker == 'END:VEVENT':
            if current is None:
                logger.warning('Ignoring END:VEVENT without matching BEGIN')
                continue
            event = parse_vevent(current)
            if event:
                events.append(event)
            current = None
        elif current is not None:
            current.append(line)

    if current is not None:
        logger.warning('Dropping unterminated VEVENT block at end of feed')

    logger.info(f"Parsed {len(events)} events from iCal feed")
    return events
