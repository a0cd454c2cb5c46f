"""
Shared ``requests`` session factory for outbound calls.
"""

from __future__ import annotations

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)


def build_session(
    *,
    retries: int = 3,
    backoff_factor: float = 0.5,
    allowed_methods: frozenset[str] | None = None,
) -> requests.Session:
    """
    Return a session that retries idempotent requests on connection errors and
    throttling/5xx responses.

    POST is excluded by default; callers that post idempotent payloads (signed
    URL creation, upserting uploads) opt in through ``allowed_methods``.
    """
    retry = Retry(
        total=retries,
        connect=retries,
        read=retries,
        backoff_factor=backoff_factor,
        status_forcelist=RETRYABLE_STATUS_CODES,
        allowed_methods=allowed_methods or Retry.DEFAULT_ALLOWED_METHODS,
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session = requests.Session()
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def is_absolute_url(value: str) -> bool:
    return value.lower().startswith(("http://", "https://"))
