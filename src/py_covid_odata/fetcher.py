"""
Fetcher module for downloading the COVID-19 time-series tables.

This module provides a Fetcher class that handles:
- Making HTTP requests to the configured source URLs.
- Resiliently retrying failed requests with exponential backoff.
- Surfacing any final failure as a FetchError naming the source URL.
"""

import logging

import httpx
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import AppSettings
from .errors import FetchError

# Configure a logger for this module
logger = logging.getLogger(__name__)


class Fetcher:
    """
    Handles the acquisition of the raw CSV tables over HTTP.
    """

    def __init__(self, settings: AppSettings):
        """
        Initializes the Fetcher with application settings.

        Args:
            settings: An instance of AppSettings containing configuration.
        """
        self.settings = settings
        self.client = httpx.Client(
            headers={"User-Agent": settings.fetch.user_agent},
            follow_redirects=True,
            timeout=settings.fetch.timeout,
        )

    def _retrying(self) -> Retrying:
        fetch = self.settings.fetch
        return Retrying(
            wait=wait_exponential(multiplier=1, min=fetch.backoff_min, max=fetch.backoff_max),
            stop=stop_after_attempt(fetch.max_attempts),
            retry=retry_if_exception_type(httpx.HTTPError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    def _download(self, url: str) -> str:
        logger.info(f"Downloading {url}")
        response = self.client.get(url)
        response.raise_for_status()
        logger.info(f"Downloaded {len(response.content)} bytes from {url}")
        return response.text

    def fetch_text(self, url: str) -> str:
        """
        Retrieves the full textual content at a URL, with retries.

        Args:
            url: The absolute URL of the table to download.

        Returns:
            The decoded response body.

        Raises:
            FetchError: If the remote is unreachable or keeps returning a
                        non-success status after the final attempt.
        """
        try:
            return self._retrying()(self._download, url)
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error while downloading {url}: {e}")
            raise FetchError(url, f"status {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Transport error while downloading {url}: {e}")
            raise FetchError(url, str(e) or type(e).__name__) from e

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "Fetcher":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
