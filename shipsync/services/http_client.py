"""
Shared HTTP transport for the ECCANG SOAP endpoint.
SOAP bodies are POSTed as raw XML; read-only services may retry on 5xx and
connection errors, order-changing services are sent once.
"""
import asyncio
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0
DEFAULT_RETRIES = 2
RETRY_BACKOFF_BASE = 1.0  # seconds


async def _sleep_backoff(attempt: int) -> None:
    if attempt <= 0:
        return
    delay = RETRY_BACKOFF_BASE * (2 ** (attempt - 1))
    await asyncio.sleep(min(delay, 10.0))


async def post_with_retry(
    url: str,
    *,
    content: str,
    headers: Optional[dict] = None,
    timeout: float = DEFAULT_TIMEOUT,
    max_retries: int = DEFAULT_RETRIES,
    retry_on: tuple[int, ...] = (502, 503, 504),
) -> str:
    """
    POST a body and return the response text, raising httpx errors on failure.
    Retries only on retry_on status codes and on connection errors.
    """
    for attempt in range(max_retries + 1):
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                resp = await client.post(url, content=content.encode("utf-8"), headers=headers or {})
            if attempt < max_retries and resp.status_code in retry_on:
                logger.warning("HTTP POST %s attempt %s returned %s", url, attempt + 1, resp.status_code)
                await _sleep_backoff(attempt + 1)
                continue
            resp.raise_for_status()
            return resp.text
        except (httpx.ConnectError, httpx.ReadTimeout, httpx.ConnectTimeout) as e:
            if attempt < max_retries:
                logger.warning("HTTP POST %s attempt %s failed: %s", url, attempt + 1, e)
                await _sleep_backoff(attempt + 1)
            else:
                raise
    raise httpx.HTTPError(f"POST {url} exhausted retries")


async def post_no_retry(
    url: str,
    *,
    content: str,
    headers: Optional[dict] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> str:
    """POST with no retries (non-idempotent). Single attempt with timeout."""
    return await post_with_retry(url, content=content, headers=headers, timeout=timeout, max_retries=0)
