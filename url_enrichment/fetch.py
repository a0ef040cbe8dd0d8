"""Page fetching over httpx.

`fetch_page` performs one GET under a total deadline and never raises: every outcome, including
timeouts and transport errors, is reported in the returned `FetchResult`.
`fetch_many` is the bulk form used by batch collection: bounded concurrency,
transient failures retried, results in input order.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from .retry import RetryPolicy, retry_async

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "url-enrichment/1.0"

# Status codes worth retrying in bulk collection.
_RETRY_STATUSES = {408, 425, 429, 500, 502, 503, 504}


@dataclass(frozen=True)
class FetchResult:
    url: str
    success: bool
    status_code: Optional[int] = None
    body: str = ""
    elapsed_ms: float = 0.0
    error: Optional[str] = None
    timed_out: bool = False

    def summary(self) -> dict[str, Any]:
        """JSON-safe summary without the body."""
        return {
            "url": self.url,
            "success": self.success,
            "status_code": self.status_code,
            "elapsed_ms": round(self.elapsed_ms, 1),
            "error": self.error,
            "body_length": len(self.body),
        }


def new_client(*, user_agent: str = DEFAULT_USER_AGENT, **kwargs: Any) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        headers={"User-Agent": user_agent},
        follow_redirects=True,
        **kwargs,
    )


async def fetch_page(
    client: httpx.AsyncClient,
    url: str,
    *,
    timeout: float,
    headers: Optional[dict[str, str]] = None,
) -> FetchResult:
    start = time.monotonic()

    def _elapsed() -> float:
        return (time.monotonic() - start) * 1000.0

    try:
        # httpx timeouts are per phase; wait_for bounds the whole request.
        response = await asyncio.wait_for(client.get(url, timeout=timeout, headers=headers), timeout=timeout)
    except (httpx.TimeoutException, asyncio.TimeoutError) as e:
        logger.debug(f"Timeout fetching {url}: {e!r}")
        return FetchResult(url=url, success=False, elapsed_ms=_elapsed(), error="timeout", timed_out=True)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.debug(f"Request error fetching {url}: {e!r}")
        return FetchResult(url=url, success=False, elapsed_ms=_elapsed(), error=str(e) or type(e).__name__)

    ok = 200 <= response.status_code < 300
    return FetchResult(
        url=url,
        success=ok,
        status_code=response.status_code,
        body=response.text if ok else "",
        elapsed_ms=_elapsed(),
        error=None if ok else f"HTTP {response.status_code}",
    )


def _should_retry(result: FetchResult) -> bool:
    if result.success:
        return False
    if result.status_code is None:
        return True
    return result.status_code in _RETRY_STATUSES


async def fetch_many(
    urls: Iterable[str],
    *,
    max_concurrency: int = 100,
    timeout: float = 30,
    retry_policy: Optional[RetryPolicy] = None,
    client: Optional[httpx.AsyncClient] = None,
    user_agent: str = DEFAULT_USER_AGENT,
) -> list[FetchResult]:
    """Fetch every URL with at most `max_concurrency` requests in flight."""
    url_list = list(urls)
    if not url_list:
        return []

    policy = retry_policy or RetryPolicy(retries=3)
    sem = asyncio.Semaphore(max(1, max_concurrency))
    owned = client is None
    http = client or new_client(user_agent=user_agent)

    async def _one(url: str) -> FetchResult:
        async with sem:
            return await retry_async(
                lambda: fetch_page(http, url, timeout=timeout),
                policy,
                _should_retry,
            )

    try:
        results = await asyncio.gather(*(_one(u) for u in url_list))
    finally:
        if owned:
            await http.aclose()

    ok = sum(1 for r in results if r.success)
    logger.info(f"Fetched {ok}/{len(results)} URLs successfully")
    return list(results)
