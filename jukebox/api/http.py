#!/usr/bin/env python3
"""Resilient HTTP transport shared by the Backend and Music Service clients.

Each attempt is bounded by a fixed timeout. Attempts that time out are
retried with a linearly growing backoff until the attempt budget is spent;
any other failure surfaces immediately. Error *responses* are returned to
the caller untouched, only failures below HTTP are raised.
"""

import asyncio
import logging
import platform
import time
from typing import Any, Dict, Mapping, Optional

import httpx

from .. import constants
from ..errors import TransportError, TransportErrorKind
from ..utils.clock import SYSTEM_CLOCK, Clock
from ..version import get_user_agent

_LOGGER = logging.getLogger("jukebox.http")


def build_client(timeout_seconds: float = constants.HTTP_TIMEOUT_SECONDS) -> httpx.AsyncClient:
    """Create a configured httpx.AsyncClient for the transport."""
    python_version = platform.python_version()
    client = httpx.AsyncClient(
        timeout=httpx.Timeout(timeout_seconds),
        headers={
            "Accept": "application/json",
            "User-Agent": f"{get_user_agent()} (Python {python_version}; httpx {httpx.__version__})",
        },
        trust_env=False,
    )
    return client


class ResilientTransport:
    """Timeout + bounded retry wrapper around one ``httpx.AsyncClient``.

    Stateless across logical requests; the only state of a call is its
    attempt counter.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        timeout_seconds: float = constants.HTTP_TIMEOUT_SECONDS,
        max_attempts: int = constants.HTTP_MAX_ATTEMPTS,
        backoff_unit_ms: int = constants.HTTP_BACKOFF_UNIT_MS,
        clock: Clock = SYSTEM_CLOCK,
        default_headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._owns_client = client is None
        self._client = client if client is not None else build_client(timeout_seconds)
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max_attempts
        self.backoff_unit_ms = backoff_unit_ms
        self._clock = clock
        self._default_headers: Dict[str, str] = dict(default_headers or {})

        _LOGGER.debug(
            "HTTP transport configured",
            extra={
                "http.timeout": timeout_seconds,
                "http.max_attempts": max_attempts,
                "http.backoff_unit_ms": backoff_unit_ms,
            },
        )

    def backoff_ms(self, attempt: int) -> int:
        """Delay before the attempt after ``attempt`` (1-based)."""
        return attempt * self.backoff_unit_ms

    def _build_headers(
        self,
        headers: Optional[Mapping[str, str]],
        bearer: Optional[str],
        has_json: bool,
    ) -> Dict[str, str]:
        merged: Dict[str, str] = {"User-Agent": get_user_agent(), **self._default_headers}
        if has_json:
            merged["Content-Type"] = "application/json"
        if bearer:
            merged["Authorization"] = f"Bearer {bearer}"
        if headers:
            merged.update(headers)
        return merged

    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        bearer: Optional[str] = None,
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
        data: Optional[Mapping[str, Any]] = None,
    ) -> httpx.Response:
        """Send one logical request.

        Raises:
            TransportError: timeout after the last attempt, or any network or
                protocol failure (never retried).
        """
        method_upper = method.upper()
        attempt = 1

        while True:
            # Rebuilt per attempt so a retried request carries every header
            request_headers = self._build_headers(headers, bearer, json is not None)
            start = time.perf_counter()
            try:
                response = await asyncio.wait_for(
                    self._client.request(
                        method_upper,
                        url,
                        headers=request_headers,
                        params=params,
                        json=json,
                        data=data,
                    ),
                    timeout=self.timeout_seconds,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
                elapsed = round(time.perf_counter() - start, 3)
                if attempt >= self.max_attempts:
                    _LOGGER.error(
                        "http.fail",
                        extra={"method": method_upper, "url": url, "attempts": attempt, "reason": "timeout"},
                    )
                    raise TransportError(
                        TransportErrorKind.TIMEOUT,
                        f"{method_upper} {url} timed out after {attempt} attempts",
                        attempts=attempt,
                    ) from exc

                backoff = self.backoff_ms(attempt)
                _LOGGER.warning(
                    "http.retry",
                    extra={
                        "method": method_upper,
                        "url": url,
                        "attempt": attempt,
                        "elapsed": elapsed,
                        "backoff_ms": backoff,
                    },
                )
                await self._clock.sleep_ms(backoff)
                attempt += 1
                continue
            except httpx.NetworkError as exc:
                _LOGGER.warning(
                    "http.network_error",
                    extra={"method": method_upper, "url": url, "attempt": attempt, "error": exc.__class__.__name__},
                )
                raise TransportError(
                    TransportErrorKind.NETWORK, f"{method_upper} {url} failed: {exc}", attempts=attempt
                ) from exc
            except httpx.TransportError as exc:
                _LOGGER.warning(
                    "http.aborted",
                    extra={"method": method_upper, "url": url, "attempt": attempt, "error": exc.__class__.__name__},
                )
                raise TransportError(
                    TransportErrorKind.ABORTED, f"{method_upper} {url} aborted: {exc}", attempts=attempt
                ) from exc

            _LOGGER.debug(
                "http.response",
                extra={
                    "method": method_upper,
                    "url": url,
                    "status": response.status_code,
                    "attempt": attempt,
                    "elapsed": round(time.perf_counter() - start, 3),
                },
            )
            return response

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = ["ResilientTransport", "build_client"]
