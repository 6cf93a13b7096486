"""
HTTP helpers for ledger clients.

Provides retry/backoff for transient errors and rate limits.
"""

from __future__ import annotations

import asyncio
import random
from typing import Iterable, Tuple

import httpx
import structlog

logger = structlog.get_logger()


RETRY_STATUSES = {408, 425, 429, 500, 502, 503, 504}
DEFAULT_BASE_BACKOFF = 0.5
DEFAULT_MAX_BACKOFF = 8.0


def _backoff(attempt: int, base_backoff: float, max_backoff: float) -> float:
    delay = min(max_backoff, base_backoff * (2 ** (attempt - 1)))
    return delay + random.uniform(0, delay / 2)


def retry_budget(
    max_attempts: int,
    timeout: float,
    base_backoff: float = DEFAULT_BASE_BACKOFF,
    max_backoff: float = DEFAULT_MAX_BACKOFF,
) -> float:
    """
    Worst-case wall time of `request_with_retry`: every attempt runs into
    `timeout` and every sleep takes its longest value (full jitter, or a
    Retry-After capped at `max_backoff`).
    """
    sleeps = sum(
        max(max_backoff, 1.5 * min(max_backoff, base_backoff * (2 ** (attempt - 1))))
        for attempt in range(1, max_attempts)
    )
    return max_attempts * timeout + sleeps


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    max_attempts: int = 5,
    retry_statuses: Iterable[int] | None = None,
    base_backoff: float = DEFAULT_BASE_BACKOFF,
    max_backoff: float = DEFAULT_MAX_BACKOFF,
    **kwargs,
) -> Tuple[httpx.Response, int]:
    """
    Make an HTTP request with exponential backoff + jitter.
    Every attempt sends identical method, url, headers and body.
    Returns the final response and the number of attempts it took.
    """
    retry_statuses = set(retry_statuses or RETRY_STATUSES)

    attempt = 0
    while True:
        attempt += 1
        try:
            response = await client.request(method, url, **kwargs)

            if response.status_code in retry_statuses and attempt < max_attempts:
                retry_after = response.headers.get("Retry-After")
                if retry_after:
                    try:
                        delay = min(max_backoff, float(retry_after))
                    except ValueError:
                        delay = base_backoff
                else:
                    delay = _backoff(attempt, base_backoff, max_backoff)

                logger.warning(
                    "Retrying request due to status",
                    status_code=response.status_code,
                    url=url,
                    attempt=attempt,
                    delay=delay,
                )
                await asyncio.sleep(delay)
                continue

            return response, attempt

        except (httpx.TimeoutException, httpx.NetworkError) as e:
            if attempt >= max_attempts:
                raise

            delay = _backoff(attempt, base_backoff, max_backoff)
            logger.warning(
                "Retrying request due to network error",
                url=url,
                attempt=attempt,
                delay=delay,
                error=str(e),
            )
            await asyncio.sleep(delay)
