"""HTTPS fetcher for remote iCal availability feeds."""
import logging
import time
from typing import Callable

import requests

from ical.parser import has_calendar_wrapper
from processor.config import DEFAULT_USER_AGENT
from processor.errors import FetchError, FormatError

logger = logging.getLogger(__name__)

ACCEPT_HEADER = 'text/calendar, text/plain, */*'


def validate_feed_url(url: str) -> None:
    """
    Reject feed URLs that are not HTTPS.

    Args:
        url: Feed URL from the connection configuration

    Raises:
        FetchError: If the URL is missing or does not use HTTPS
    """
    if not url:
        raise FetchError('Feed URL not configured')
    if not url.lower().startswith('https://'):
        raise FetchError(f"Feed URL must use HTTPS protocol: {url}")


class ICalFeedFetcher:
    """Downloads iCal feeds over HTTPS."""

    def __init__(
        self,
        timeout: int = 30,
        max_retries: int = 3,
        user_agent: str = DEFAULT_USER_AGENT,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the feed fetcher.

        Args:
            timeout: Total time budget in seconds for one fetch, retries and
                backoff included (default: 30)
            max_retries: Attempts made for transient failures (default: 3)
            user_agent: User-Agent header sent with every request
            clock: Monotonic clock used to enforce the time budget
        """
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.user_agent = user_agent
        self.clock = clock

    def fetch(self, url: str) -> str:
        """
        Fetch the raw text of an iCal feed.

        Args:
            url: HTTPS feed URL

        Returns:
            Feed body as text

        Raises:
            FetchError: If the URL is not HTTPS or the download fails
            FormatError: If the body is empty or lacks the VCALENDAR wrapper
        """
        validate_feed_url(url)

        body = self._fetch_feed_text(url)

        if not body or not body.strip():
            raise FormatError('iCal feed is empty')
        if not has_calendar_wrapper(body):
            raise FormatError('Invalid iCalendar format: missing VCALENDAR wrapper')

        return body

    def _fetch_feed_text(self, url: str) -> str:
        """
        GET the feed with retry logic inside one overall deadline.

        Timeouts, connection errors and 5xx responses are retried with
        exponential backoff; other HTTP errors fail immediately. Each
        attempt gets whatever remains of the time budget, and no retry is
        started when its backoff would not leave time for another request.

        Args:
            url: HTTPS feed URL

        Returns:
            Response body as text

        Raises:
            FetchError: If all retry attempts fail or the budget runs out
        """
        headers = {
            'User-Agent': self.user_agent,
            'Accept': ACCEPT_HEADER,
        }
        base_delay = 1  # seconds
        deadline = self.clock() + self.timeout

        for attempt in range(self.max_retries):
            try:
                remaining = deadline - self.clock()
                logger.info(
                    f"Fetching iCal feed (attempt {attempt + 1}/{self.max_retries}, "
                    f"{remaining:.1f}s left)"
                )
                response = requests.get(url, headers=headers, timeout=remaining)
                response.raise_for_status()
                break

            except requests.RequestException as e:
                status_code = getattr(e.response, 'status_code', None)
                retryable = status_code is None or status_code >= 500
                delay = base_delay * (2 ** attempt)
                has_budget = deadline - self.clock() > delay

                if retryable and attempt < self.max_retries - 1 and has_budget:
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{self.max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                    continue

                logger.error(f"Failed to fetch iCal feed: {e}")
                raise FetchError(f"Failed to fetch iCal feed: {e}") from e

        content_type = response.headers.get('Content-Type', '')
        if 'text/calendar' not in content_type and 'text/plain' not in content_type:
            logger.warning(
                f"Unexpected content-type: {content_type}, proceeding anyway"
            )
        if 'charset' not in content_type.lower():
            # RFC 5545 default charset
            response.encoding = 'utf-8'

        return response.text
