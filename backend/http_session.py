"""HTTP session with retry, default timeout and rate-limit awareness.

Shared by the indexer and download client adapters. Network failures are
translated into the caller's error type (IndexerError or
DownloadClientError) so that managers can treat a source as unavailable
for the current pass without knowing about requests.
"""

import logging
import time

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from error_handler import GrabarrError
from version import __version__

logger = logging.getLogger(__name__)

DEFAULT_RATE_LIMIT_SECONDS = 60


def create_session(
    error_cls: type[GrabarrError],
    timeout: int = 15,
    max_retries: int = 2,
    backoff_factor: float = 0.5,
    user_agent: str = f"Grabarr/{__version__}",
) -> "RetryingSession":
    """Create a RetryingSession that raises error_cls on transport failures."""
    session = RetryingSession(error_cls=error_cls, timeout=timeout)
    session.headers["User-Agent"] = user_agent

    retry_strategy = Retry(
        total=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=[500, 502, 503, 504],
        allowed_methods=["GET", "POST"],
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def _retry_after_seconds(resp: requests.Response) -> int:
    value = resp.headers.get("Retry-After")
    if not value:
        return DEFAULT_RATE_LIMIT_SECONDS
    try:
        return max(1, int(value))
    except ValueError:
        return DEFAULT_RATE_LIMIT_SECONDS


class RetryingSession(requests.Session):
    """Session with a default timeout that never sleeps on rate limits.

    While a 429 back-off is in effect every request fails fast with
    error_cls instead of waiting, so a pass is never held up past its
    network timeout.
    """

    def __init__(self, error_cls: type[GrabarrError], timeout: int = 15):
        super().__init__()
        self.error_cls = error_cls
        self.default_timeout = timeout
        self._rate_limit_until: float | None = None

    def request(self, method, url, **kwargs):
        kwargs.setdefault("timeout", self.default_timeout)

        if self._rate_limit_until and time.time() < self._rate_limit_until:
            wait = int(self._rate_limit_until - time.time())
            raise self.error_cls(f"Rate limited by {url}, retry in {wait}s")

        try:
            resp = super().request(method, url, **kwargs)
        except requests.Timeout as e:
            logger.warning("Timeout for %s %s", method, url)
            raise self.error_cls(f"Timeout contacting {url}") from e
        except requests.RequestException as e:
            logger.warning("Request error for %s %s: %s", method, url, e)
            raise self.error_cls(f"Cannot reach {url}: {e}") from e

        if resp.status_code == 429:
            wait_seconds = _retry_after_seconds(resp)
            self._rate_limit_until = time.time() + wait_seconds
            logger.warning("Rate limited by %s, backing off %ds", url, wait_seconds)
            raise self.error_cls(f"Rate limited by {url}, retry after {wait_seconds}s")

        if resp.status_code in (401, 403):
            raise self.error_cls(
                f"Authentication failed for {url}: HTTP {resp.status_code}",
                context={"status_code": resp.status_code},
            )

        return resp
