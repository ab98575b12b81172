"""
Purpose: HTTP helpers for outbound webhooks with timeout and optional retry.
Constraints: No business logic; callers decide what a failure means.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

import requests

from mention_monitor.core.utils.retry import retry

RETRY_ON_STATUS = frozenset({500, 502, 503, 504})


class RetryableStatus(requests.HTTPError):
    pass


def request_with_retry(
    method: str,
    url: str,
    *,
    timeout: float,
    session: Optional[requests.Session] = None,
    attempts: int = 1,
    base_delay: float = 0.5,
    jitter: float = 0.2,
    **kwargs: Any,
) -> requests.Response:
    """Issue one request (retrying 5xx/connection errors up to `attempts`) and raise on HTTP errors."""
    sender = session or requests

    def _do_request() -> requests.Response:
        resp = sender.request(method, url, timeout=timeout, **kwargs)
        if resp.status_code in RETRY_ON_STATUS:
            raise RetryableStatus(f"Retryable HTTP status: {resp.status_code}", response=resp)
        resp.raise_for_status()
        return resp

    return retry(
        _do_request,
        attempts=attempts,
        base_delay=base_delay,
        jitter=jitter,
        exceptions=(RetryableStatus, requests.ConnectionError, requests.Timeout),
    )


def post_json(url: str, payload: Mapping[str, Any], *, timeout: float, **kwargs: Any) -> requests.Response:
    return request_with_retry("POST", url, json=dict(payload), timeout=timeout, **kwargs)
