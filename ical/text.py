"""Line folding and text escaping rules for iCalendar content."""
import re

MAX_LINE_LENGTH = 75
CRLF = '\r\n'

_FOLD_RE = re.compile(r'\r?\n[ \t]')
_ESCAPE_RE = re.compile(r'\\([\\;,nN])')

_UNESCAPED = {
    '\\': '\\',
    ';': ';',
    ',': ',',
    'n': '\n',
    'N': '\n',
}


def unfold_lines(ical_data: str) -> str:
    """
    Rejoin folded lines.

    A line break immediately followed by a single space or tab is a
    continuation marker and is removed entirely.

    Args:
        ical_data: Raw iCalendar text

    Returns:
        Text with every logical line on one physical line
    """
    return _FOLD_RE.sub('', ical_data)


def _octets(char: str) -> int:
    return len(char.encode('utf-8'))


def fold_line(line: str) -> str:
    """
    Fold a content line at 75 octets of UTF-8.

    The first segment holds at most 75 octets; each continuation line
    starts with one space and holds at most 74 more. A multi-byte
    character is never split across segments.

    Args:
        line: Unfolded content line without a line terminator

    Returns:
        Folded line, segments joined with CRLF
    """
    if len(line.encode('utf-8')) <= MAX_LINE_LENGTH:
        return line

    folded = []
    segment = []
    size = 0
    limit = MAX_LINE_LENGTH

    for char in line:
        width = _octets(char)
        if size + width > limit:
            folded.append(''.join(segment))
            segment = []
            size = 0
            limit = MAX_LINE_LENGTH - 1
        segment.append(char)
        size += width

    folded.append(''.join(segment))
    return CRLF.join([folded[0]] + [' ' + part for part in folded[1:]])


def escape_text(text: str) -> str:
    """
    Escape a TEXT value (backslash, semicolon, comma, newline).

    TEXT values cannot carry a raw carriage return, so CRLF and bare CR
    line breaks are normalized to ``\\n`` before escaping. unescape_text
    therefore returns LF line breaks for such input.

    Args:
        text: Plain text

    Returns:
        Escaped text safe to place after a property colon
    """
    return (
        text.replace('\\', '\\\\')
        .replace(';', '\\;')
        .replace(',', '\\,')
        .replace('\r\n', '\n')
        .replace('\r', '\n')
        .replace('\n', '\\n')
    )


def unescape_text(text: str) -> str:
    """
    Reverse escape_text.

    Works in one left-to-right pass so that an escaped backslash followed
    by ``n`` is never read as a newline.

    Args:
        text: Escaped TEXT value

    Returns:
        Plain text
    """
    return _ESCAPE_RE.sub(lambda match: _UNESCAPED[match.group(1)], text)
