"""HTTP client for the graph/vector backing store.

Every operation is a named query: POST {base_url}/{query_name} with a JSON
object body, JSON response. Misses ("not found", "No value", "couldn't
find") come back immediately as NotFound; everything else is retried with
exponential backoff.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from ..config import HelixConfig, get_helix_config
from ..errors import ConnectionFailed, NotFound, QueryError, RetryExhausted

log = logging.getLogger("ontomem")

MAX_RETRIES = 3
INITIAL_DELAY = 0.1
MAX_DELAY = 10.0

MISS_MARKERS = ("not found", "no value", "couldn't find")


def is_miss(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in MISS_MARKERS)


class HelixClient:
    def __init__(
        self,
        config: HelixConfig | None = None,
        *,
        max_retries: int | None = None,
        initial_delay: float = INITIAL_DELAY,
        max_delay: float = MAX_DELAY,
    ):
        self.config = config or get_helix_config()
        self.base_url = self.config.base_url
        self.timeout = self.config.timeout
        self.max_retries = max_retries or self.config.max_retries or MAX_RETRIES
        self.initial_delay = initial_delay
        self.max_delay = max_delay

    def __repr__(self) -> str:
        return f"HelixClient({self.base_url}, instance={self.config.instance})"

    async def _post(self, query_name: str, params: dict) -> Any:
        url = f"{self.base_url}/{query_name}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(url, json=params)
        except httpx.TimeoutException as e:
            raise ConnectionFailed(f"{query_name} timed out: {e}") from e
        except httpx.TransportError as e:
            raise ConnectionFailed(f"cannot reach {self.base_url}: {e}") from e

        if resp.status_code != 200:
            body = resp.text
            if is_miss(body):
                raise NotFound(f"{query_name}: {body}")
            err = QueryError(f"{query_name} failed ({resp.status_code}): {body}")
            err.status_code = resp.status_code
            raise err

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise QueryError(f"{query_name} returned invalid JSON: {e}") from e

    async def execute_query(self, query_name: str, params: dict | None = None) -> Any:
        """Run a named query with retries. Raises NotFound on a logical miss."""
        params = params or {}
        delay = self.initial_delay
        last: Exception | None = None

        for attempt in range(1, self.max_retries + 1):
            try:
                return await self._post(query_name, params)
            except NotFound:
                raise
            except (ConnectionFailed, QueryError) as e:
                last = e
                if attempt == self.max_retries:
                    break
                log.warning(
                    "query %s failed (attempt %d/%d): %s, retrying in %.1fs",
                    query_name, attempt, self.max_retries, e, delay,
                )
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.max_delay)

        log.error("query %s gave up after %d attempts: %s", query_name, self.max_retries, last)
        raise RetryExhausted(self.max_retries, last)

    async def execute_query_no_retry(self, query_name: str, params: dict | None = None) -> Any:
        return await self._post(query_name, params or {})

    async def health_check(self) -> bool:
        """True when the server answers. A 404 from the health route still means it's alive."""
        try:
            await self.execute_query_no_retry("health", {})
            return True
        except NotFound:
            return True
        except QueryError as e:
            return getattr(e, "status_code", None) == 404
        except ConnectionFailed as e:
            log.warning("health check failed: %s", e)
            return False
