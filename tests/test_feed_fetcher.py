"""Unit tests for ICalFeedFetcher."""
from unittest.mock import patch

import pytest
import responses
from requests.exceptions import ConnectionError, Timeout

from fetcher.feed_fetcher import ICalFeedFetcher, validate_feed_url
from processor.errors import FetchError, FormatError
from tests.conftest import FEED_URL, make_feed, make_vevent


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def no_backoff_sleep():
    """Skip retry delays."""
    with patch('fetcher.feed_fetcher.time.sleep') as sleep:
        yield sleep


class TestICalFeedFetcher:
    """Test cases for ICalFeedFetcher class."""

    @responses.activate
    def test_fetch_success(self):
        """Feed text is returned and request headers are set."""
        feed = make_feed(make_vevent('abc123'))
        responses.add(
            responses.GET,
            FEED_URL,
            body=feed,
            status=200,
            content_type='text/calendar'
        )

        fetcher = ICalFeedFetcher(timeout=30, user_agent='TestAgent/1.0')
        body = fetcher.fetch(FEED_URL)

        assert body == feed
        request = responses.calls[0].request
        assert request.headers['User-Agent'] == 'TestAgent/1.0'
        assert request.headers['Accept'] == 'text/calendar, text/plain, */*'

    @responses.activate
    def test_http_url_rejected_before_request(self):
        """Plain HTTP never reaches the network."""
        fetcher = ICalFeedFetcher()

        with pytest.raises(FetchError):
            fetcher.fetch('http://www.airbnb.com/calendar/ical/123.ics')

        assert len(responses.calls) == 0

    def test_validate_feed_url_requires_value(self):
        with pytest.raises(FetchError):
            validate_feed_url('')

    @responses.activate
    def test_server_error_retried_then_success(self, no_backoff_sleep):
        feed = make_feed(make_vevent('abc123'))
        responses.add(responses.GET, FEED_URL, body='Server Error', status=503)
        responses.add(responses.GET, FEED_URL, body=feed, status=200)

        fetcher = ICalFeedFetcher(max_retries=3)
        assert fetcher.fetch(FEED_URL) == feed
        assert len(responses.calls) == 2
        no_backoff_sleep.assert_called_once_with(1)

    @responses.activate
    def test_all_retries_fail(self):
        for _ in range(3):
            responses.add(responses.GET, FEED_URL, body='Server Error', status=500)

        fetcher = ICalFeedFetcher(max_retries=3)

        with pytest.raises(FetchError):
            fetcher.fetch(FEED_URL)

        assert len(responses.calls) == 3

    @responses.activate
    def test_client_error_not_retried(self):
        """4xx responses fail on the first attempt."""
        responses.add(responses.GET, FEED_URL, body='Not Found', status=404)

        fetcher = ICalFeedFetcher(max_retries=3)

        with pytest.raises(FetchError, match='404'):
            fetcher.fetch(FEED_URL)

        assert len(responses.calls) == 1

    @responses.activate
    def test_timeout_raises_fetch_error(self):
        responses.add(responses.GET, FEED_URL, body=Timeout('Request timed out'))
        responses.add(responses.GET, FEED_URL, body=ConnectionError('refused'))

        fetcher = ICalFeedFetcher(max_retries=2)

        with pytest.raises(FetchError):
            fetcher.fetch(FEED_URL)

        assert len(responses.calls) == 2

    def test_retries_share_one_time_budget(self, no_backoff_sleep):
        """Attempts and backoff together never exceed the timeout."""
        clock = FakeClock()
        no_backoff_sleep.side_effect = clock.advance
        timeouts = []

        def slow_get(url, headers, timeout):
            timeouts.append(timeout)
            clock.advance(min(10, timeout))
            raise Timeout('Read timed out')

        fetcher = ICalFeedFetcher(timeout=30, max_retries=3, clock=clock)

        with patch('fetcher.feed_fetcher.requests.get', side_effect=slow_get):
            with pytest.raises(FetchError):
                fetcher.fetch(FEED_URL)

        assert timeouts == [30, 19, 7]
        assert clock.now == 30

    def test_no_retry_once_budget_is_spent(self, no_backoff_sleep):
        clock = FakeClock()
        no_backoff_sleep.side_effect = clock.advance

        def hanging_get(url, headers, timeout):
            clock.advance(timeout)
            raise Timeout('Read timed out')

        fetcher = ICalFeedFetcher(timeout=30, max_retries=3, clock=clock)

        with patch('fetcher.feed_fetcher.requests.get', side_effect=hanging_get) as get:
            with pytest.raises(FetchError):
                fetcher.fetch(FEED_URL)

        assert get.call_count == 1
        no_backoff_sleep.assert_not_called()
        assert clock.now <= 30

    @responses.activate
    def test_empty_body_raises_format_error(self):
        responses.add(responses.GET, FEED_URL, body='   ', status=200)

        with pytest.raises(FormatError):
            ICalFeedFetcher().fetch(FEED_URL)

    @responses.activate
    def test_missing_wrapper_raises_format_error(self):
        responses.add(responses.GET, FEED_URL, body=make_vevent('abc'), status=200)

        with pytest.raises(FormatError):
            ICalFeedFetcher().fetch(FEED_URL)

    @responses.activate
    def test_body_decoded_as_utf8_without_charset(self):
        feed = make_feed(make_vevent('abc', summary='Séjour'))
        responses.add(
            responses.GET,
            FEED_URL,
            body=feed.encode('utf-8'),
            status=200,
            content_type='text/calendar'
        )

        assert 'Séjour' in ICalFeedFetcher().fetch(FEED_URL)
