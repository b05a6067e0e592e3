"""Unit tests for iCal line folding and text escaping."""
import pytest

from ical.text import escape_text, fold_line, unescape_text, unfold_lines


class TestFolding:
    """Test cases for fold_line and unfold_lines."""

    def test_short_line_is_not_folded(self):
        """Lines of 75 characters or fewer are returned as-is."""
        line = 'A' * 75
        assert fold_line(line) == line

    def test_long_line_is_folded_at_75_then_74(self):
        """First segment holds 75 characters, continuations hold 74 plus a space."""
        line = 'B' * 200
        segments = fold_line(line).split('\r\n')

        assert len(segments[0]) == 75
        assert all(segment.startswith(' ') for segment in segments[1:])
        assert all(len(segment) <= 75 for segment in segments[1:])
        assert len(segments[1]) == 75
        assert ''.join([segments[0]] + [s[1:] for s in segments[1:]]) == line

    @pytest.mark.parametrize('length', [0, 1, 74, 75, 76, 149, 150, 151, 333, 500])
    def test_fold_then_unfold_is_identity(self, length):
        """Folding then unfolding reproduces the original line."""
        alphabet = 'abc, def; ghi\\ jkl: mno \t pqr '
        line = (alphabet * 20)[:length]
        assert unfold_lines(fold_line(line)) == line

    def test_multibyte_characters_fold_by_octets(self):
        """Segments stay within 75 UTF-8 octets and never split a character."""
        line = 'DESCRIPTION:Total: ' + '€' * 60 + ' paid'
        folded = fold_line(line)
        segments = folded.split('\r\n')

        assert len(segments) > 1
        assert all(len(segment.encode('utf-8')) <= 75 for segment in segments)
        assert len(segments[0].encode('utf-8')) >= 73
        assert unfold_lines(folded) == line

    def test_unfold_handles_lf_and_tab_continuations(self):
        """Bare LF and tab continuation markers are also removed."""
        assert unfold_lines('DESCRIPTION:Hello\n World') == 'DESCRIPTION:HelloWorld'
        assert unfold_lines('SUMMARY:Split\r\n\there') == 'SUMMARY:Splithere'

    def test_unfold_removes_only_one_whitespace(self):
        """Only the single marker character is dropped."""
        assert unfold_lines('SUMMARY:a\r\n  b') == 'SUMMARY:a b'


class TestEscaping:
    """Test cases for escape_text and unescape_text."""

    def test_escape_special_characters(self):
        assert escape_text('a,b;c\\d\ne') == 'a\\,b\\;c\\\\d\\ne'

    def test_unescape_special_characters(self):
        assert unescape_text('a\\,b\\;c\\\\d\\ne') == 'a,b;c\\d\ne'

    def test_unescape_uppercase_newline(self):
        assert unescape_text('line1\\Nline2') == 'line1\nline2'

    @pytest.mark.parametrize('text', [
        '',
        'plain text',
        'Booking: 42\nGuest: Ann, Bob; Carl',
        'C:\\new\\folder',
        '\\n is not a newline',
        'trailing backslash \\',
        ';;,,\n\n\\\\',
    ])
    def test_escape_then_unescape_is_identity(self, text):
        """Escaping then unescaping reproduces the original text."""
        assert unescape_text(escape_text(text)) == text

    @pytest.mark.parametrize('text', ['a\r\nb', 'a\rb'])
    def test_carriage_returns_normalized_to_lf(self, text):
        """TEXT has no escape for CR, so line breaks come back as LF."""
        assert escape_text(text) == 'a\\nb'
        assert unescape_text(escape_text(text)) == 'a\nb'

    def test_escaped_backslash_before_n_is_not_a_newline(self):
        """An escaped backslash followed by n stays a backslash and an n."""
        assert unescape_text('\\\\n') == '\\n'
