"""JSON-over-HTTP fetch loop with retries, backoff and rate limiting."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Type

import requests

from ..config import REQUEST_TIMEOUT, ROUTER_BACKOFF_MAX_SECONDS, ROUTER_MAX_RETRIES
from ..errors import ExternalServiceError
from .rate_limiter import RateLimiter
from .session import get_default_session

LOGGER = logging.getLogger(__name__)

_RETRYABLE_STATUSES = {429, 500, 502, 503, 504}


def extract_error(response: requests.Response) -> str:
    """Return a short error description from a failed response body."""

    try:
        payload = response.json()
    except ValueError:
        text = (response.text or "").strip()
        return text[:200]
    if isinstance(payload, Mapping):
        for key in ("error", "message", "status_message"):
            value = payload.get(key)
            if value:
                return str(value)
    return ""


def classify_response_status(
    response: requests.Response, *, can_retry: bool
) -> Tuple[str, str]:
    """Return (action, detail) where action is ok, retry or raise."""

    status = response.status_code
    if 200 <= status < 300:
        return "ok", ""
    detail = extract_error(response)
    if status in _RETRYABLE_STATUSES and can_retry:
        return "retry", detail
    return "raise", detail


class JsonHttpClient:
    """Encapsulates JSON fetching with retries, backoff and a rate limiter."""

    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        limiter: RateLimiter | None = None,
        timeout: float = REQUEST_TIMEOUT,
        max_retries: int = ROUTER_MAX_RETRIES,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session = session or get_default_session()
        self._limiter = limiter or RateLimiter()
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._sleep = sleep

    def request_json(
        self,
        method: str,
        url: str,
        *,
        context: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        error_cls: Type[ExternalServiceError] = ExternalServiceError,
    ) -> Any:
        backoff = 1.0
        attempt = 0
        while True:
            attempt += 1
            can_retry = attempt < self._max_retries
            self._limiter.before_request()
            try:
                response = self._session.request(
                    method,
                    url,
                    params=params,
                    json=json_body,
                    headers=headers,
                    timeout=self._timeout,
                )
            except requests.RequestException as exc:
                self._limiter.after_response(None, None)
                if can_retry:
                    LOGGER.warning(
                        "%s network error attempt=%s err=%s; retrying in %.1fs",
                        context,
                        attempt,
                        exc.__class__.__name__,
                        backoff,
                    )
                    self._sleep(backoff)
                    backoff = min(backoff * 2, ROUTER_BACKOFF_MAX_SECONDS)
                    continue
                message = f"{context} network error: {exc.__class__.__name__}"
                LOGGER.error(message)
                raise error_cls(message) from exc
            self._limiter.after_response(response.headers, response.status_code)

            action, detail = classify_response_status(response, can_retry=can_retry)
            if action == "retry":
                LOGGER.warning(
                    "%s HTTP %s attempt=%s; retrying in %.1fs",
                    context,
                    response.status_code,
                    attempt,
                    backoff,
                )
                self._sleep(backoff)
                backoff = min(backoff * 2, ROUTER_BACKOFF_MAX_SECONDS)
                continue
            if action == "raise":
                message = f"{context} failed with HTTP {response.status_code}"
                if detail:
                    message = f"{message} | {detail}"
                LOGGER.warning(message)
                raise error_cls(message)

            try:
                return response.json()
            except ValueError as exc:
                if can_retry:
                    LOGGER.warning(
                        "Non-JSON response for %s attempt=%s; retrying in %.1fs",
                        context,
                        attempt,
                        backoff,
                    )
                    self._sleep(backoff)
                    backoff = min(backoff * 2, ROUTER_BACKOFF_MAX_SECONDS)
                    continue
                message = f"{context} returned a non-JSON payload"
                LOGGER.error(message)
                raise error_cls(message) from exc


__all__ = ["JsonHttpClient", "classify_response_status", "extract_error"]
