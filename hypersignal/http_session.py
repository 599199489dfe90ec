"""Process-wide `requests` session for calls outside the Hyperliquid SDK.

Only the Telegram notifier uses it today. 429 and gateway errors are retried
with exponential backoff; everything else reaches the caller as a response
or a RequestException.
"""
from __future__ import annotations

import logging
import threading

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

log = logging.getLogger(__name__)

RETRY_TOTAL = 3
RETRY_BACKOFF = 0.5  # 0.5s -> 1s -> 2s
RETRY_STATUSES = (429, 502, 503, 504)

# seconds, applied per request by callers
DEFAULT_TIMEOUT = 10

_session: requests.Session | None = None
_session_lock = threading.Lock()


def build_session(total: int = RETRY_TOTAL, backoff: float = RETRY_BACKOFF) -> requests.Session:
    """New session with the retry adapter mounted for http and https."""
    retry = Retry(
        total=total,
        backoff_factor=backoff,
        status_forcelist=list(RETRY_STATUSES),
        allowed_methods=["GET", "POST"],
        raise_on_status=False,
    )
    s = requests.Session()
    adapter = HTTPAdapter(max_retries=retry)
    s.mount("https://", adapter)
    s.mount("http://", adapter)
    return s


def get_session() -> requests.Session:
    global _session
    if _session is not None:
        return _session
    with _session_lock:
        if _session is None:
            _session = build_session()
            log.info("[HTTP] Session ready | retries=%d backoff=%.1fs", RETRY_TOTAL, RETRY_BACKOFF)
    return _session


def close_session() -> None:
    """Drop the shared session (shutdown, tests)."""
    global _session
    with _session_lock:
        if _session is not None:
            _session.close()
            _session = None
