"""
Etherscan Client - Transaction feeds for the watched contract.

Uses Etherscan API V2 (unified multichain, chainid parameter).

Feeds:
- normal:   module=account&action=txlist
- internal: module=account&action=txlistinternal

Both feeds are fetched concurrently. If either fails, the whole fetch
fails; there is no partial result.
"""

import asyncio
import logging
import time
from typing import Any, Optional

import aiohttp

from ..config import TrackerConfig, get_config
from ..exceptions import (
    BridgeTrackerError,
    FetchError,
    RateLimitError,
    UpstreamError,
)
from ..models import FeedSource


logger = logging.getLogger(__name__)


FEED_ACTIONS = {
    FeedSource.NORMAL: "txlist",
    FeedSource.INTERNAL: "txlistinternal",
}

# Etherscan answers status "0" with these messages for an empty result
EMPTY_RESULT_MESSAGES = ("no transactions found", "no records found")

# Fields that identify a row across overlapping pages; internal rows share
# a hash and differ by traceId
ROW_KEY_FIELDS = ("hash", "traceId", "from", "to", "value", "isError")


def _row_key(row: Any) -> tuple:
    if not isinstance(row, dict):
        return (repr(row),)
    return tuple(str(row.get(field, "")) for field in ROW_KEY_FIELDS)


def _block_number(row: Any) -> Optional[int]:
    if not isinstance(row, dict):
        return None
    try:
        return int(str(row.get("blockNumber", "")).strip())
    except ValueError:
        return None


class EtherscanClient:
    """
    Async Etherscan V2 client for one watched address.

    Usage:
        async with EtherscanClient(config) as client:
            feeds = await client.fetch_streams()
            snapshot = build_snapshot(feeds, config.watched_address)
    """

    name = "etherscan"
    END_BLOCK = 99999999

    def __init__(
        self,
        config: Optional[TrackerConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.config = config or get_config()
        self._session = session
        self._owns_session = session is None
        self._last_latency_ms: Optional[float] = None

    # ─────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────

    async def fetch_normal(self) -> list[dict[str, Any]]:
        """Fetch normal transactions for the watched address."""
        return await self.fetch_feed(FeedSource.NORMAL)

    async def fetch_internal(self) -> list[dict[str, Any]]:
        """Fetch internal transactions (very important for bridges)."""
        return await self.fetch_feed(FeedSource.INTERNAL)

    async def fetch_streams(self) -> dict[str, list[dict[str, Any]]]:
        """
        Fetch both feeds concurrently.

        Returns:
            {"normal": [...], "internal": [...]} raw rows

        Raises:
            ConfigurationError: If no API key is configured
            FetchError: If either feed fails
        """
        self.config.require_api_key()

        normal, internal = await asyncio.gather(
            self.fetch_normal(),
            self.fetch_internal(),
        )
        logger.info(
            f"[{self.name}] Fetched {len(normal)} normal and "
            f"{len(internal)} internal txs for {self.config.watched_address}"
        )
        return {
            FeedSource.NORMAL.value: normal,
            FeedSource.INTERNAL.value: internal,
        }

    async def fetch_envelopes(self) -> dict[str, dict[str, Any]]:
        """Fetch the first page of both feeds as raw Etherscan envelopes."""
        api_key = self.config.require_api_key()

        normal, internal = await asyncio.gather(
            self._make_request(self._params(FeedSource.NORMAL, api_key)),
            self._make_request(self._params(FeedSource.INTERNAL, api_key)),
        )
        return {
            FeedSource.NORMAL.value: normal,
            FeedSource.INTERNAL.value: internal,
        }

    async def fetch_feed(self, feed: FeedSource) -> list[dict[str, Any]]:
        """
        Fetch up to max_pages pages of one feed, newest first.

        Etherscan caps page * offset at 10000 rows, so pages walk the block
        range instead of the page number: every request asks for page 1 and
        the next one ends at the lowest block of the previous page. Rows of
        that boundary block come back again and are skipped.
        """
        api_key = self.config.require_api_key()
        page_size = self.config.page_size

        rows: list[dict[str, Any]] = []
        end_block = self.END_BLOCK
        boundary: set[tuple] = set()

        for _ in range(self.config.max_pages):
            params = self._params(feed, api_key, page=1, end_block=end_block)
            response = await self._fetch_with_retry(params)
            batch = self._unwrap(response, feed)
            rows.extend(row for row in batch if _row_key(row) not in boundary)

            if len(batch) < page_size:
                break

            blocks = [b for b in (_block_number(row) for row in batch) if b is not None]
            if not blocks:
                logger.warning(f"[{self.name}] {feed.value}: page has no blockNumber, stopping")
                break

            lowest = min(blocks)
            if lowest == max(blocks):
                # a single block fills the page; the rest of it cannot be paged
                logger.warning(
                    f"[{self.name}] {feed.value}: block {lowest} exceeds page size, skipping past it"
                )
                end_block = lowest - 1
                boundary = set()
            else:
                end_block = lowest
                boundary = {_row_key(row) for row in batch if _block_number(row) == lowest}

            if end_block < 0:
                break

        logger.debug(f"[{self.name}] {feed.value}: {len(rows)} rows")
        return rows

    async def health_check(self) -> dict[str, Any]:
        """Check API connectivity with a cheap proxy call."""
        params = {
            "chainid": str(self.config.chain_id),
            "module": "proxy",
            "action": "eth_blockNumber",
        }
        if self.config.api_key:
            params["apikey"] = self.config.api_key

        try:
            response = await self._make_request(params)
            block_hex = response.get("result") if isinstance(response, dict) else None
            block = int(block_hex, 16) if isinstance(block_hex, str) else None
            logger.debug(f"[{self.name}] Health check OK, latency={self._last_latency_ms:.1f}ms")
            return {"status": "healthy", "latency_ms": self._last_latency_ms, "block_number": block}
        except (BridgeTrackerError, ValueError) as e:
            logger.warning(f"[{self.name}] Health check FAILED: {e}")
            return {"status": "unavailable", "latency_ms": self._last_latency_ms, "error": str(e)}

    # ─────────────────────────────────────────────────────────────
    # Request building / unwrapping
    # ─────────────────────────────────────────────────────────────

    def _params(
        self,
        feed: FeedSource,
        api_key: str,
        page: Optional[int] = None,
        end_block: Optional[int] = None,
    ) -> dict[str, str]:
        params = {
            "chainid": str(self.config.chain_id),
            "module": "account",
            "action": FEED_ACTIONS[feed],
            "address": self.config.watched_address,
            "startblock": "0",
            "endblock": str(self.END_BLOCK if end_block is None else end_block),
            "sort": "desc",
            "apikey": api_key,
        }
        if page is not None:
            params["page"] = str(page)
            params["offset"] = str(self.config.page_size)
        return params

    def _unwrap(self, response: Any, feed: FeedSource) -> list[dict[str, Any]]:
        """Unwrap {"status", "message", "result"} into the result rows."""
        if not isinstance(response, dict):
            raise UpstreamError(
                f"Unexpected {feed.value} response type: {type(response).__name__}",
                response_body=str(response)[:500],
            )

        status = str(response.get("status", "0"))
        message = str(response.get("message", ""))
        result = response.get("result")

        if status == "1":
            return result if isinstance(result, list) else []

        detail = result if isinstance(result, str) else message
        text = f"{message} {detail}".lower()

        if any(m in text for m in EMPTY_RESULT_MESSAGES):
            return []

        if "rate limit" in text:
            raise RateLimitError(
                f"Etherscan rate limit: {detail}",
                retry_after_seconds=1,
            )

        raise UpstreamError(
            f"Etherscan API error ({feed.value}): {detail or 'unknown error'}",
            upstream_message=detail,
            response_body=str(response)[:500],
        )

    # ─────────────────────────────────────────────────────────────
    # HTTP
    # ─────────────────────────────────────────────────────────────

    async def _fetch_with_retry(self, params: dict[str, str]) -> dict[str, Any]:
        """Fetch with limited retries for network and server errors."""
        last_error: Optional[Exception] = None
        max_retries = self.config.max_retries

        for attempt in range(max_retries):
            try:
                return await self._make_request(params)

            except RateLimitError:
                raise

            except FetchError as e:
                if e.status_code and 400 <= e.status_code < 500:
                    raise
                last_error = e

            if attempt + 1 < max_retries:
                wait_time = self.config.retry_backoff_base ** attempt
                logger.warning(
                    f"[{self.name}] Retry {attempt + 1}/{max_retries} "
                    f"in {wait_time:.1f}s: {last_error}"
                )
                await asyncio.sleep(wait_time)

        raise FetchError(
            f"Failed after {max_retries} attempts",
            original_error=last_error,
            status_code=getattr(last_error, "status_code", None),
            request_url=self.config.api_url,
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout_seconds),
                headers={
                    "Accept": "application/json",
                    "User-Agent": "BridgeTracker/1.0",
                },
            )
            self._owns_session = True
        return self._session

    async def _make_request(self, params: dict[str, str]) -> dict[str, Any]:
        """GET the API with error mapping."""
        session = await self._get_session()
        url = self.config.api_url

        start_time = time.time()
        try:
            async with session.get(url, params=params) as response:
                self._last_latency_ms = (time.time() - start_time) * 1000

                if response.status == 429:
                    retry_after = response.headers.get("Retry-After")
                    raise RateLimitError(
                        "Rate limit exceeded",
                        retry_after_seconds=int(retry_after) if retry_after and retry_after.isdigit() else 60,
                        status_code=429,
                    )

                if response.status >= 400:
                    body = await response.text()
                    raise FetchError(
                        f"HTTP {response.status}",
                        status_code=response.status,
                        response_body=body[:500],
                        request_url=url,
                    )

                return await response.json(content_type=None)

        except asyncio.TimeoutError as e:
            raise FetchError("Timeout", request_url=url, original_error=e)
        except aiohttp.ClientError as e:
            raise FetchError(
                f"Connection error: {e}",
                request_url=url,
                original_error=e,
            )
        except ValueError as e:
            # body was not JSON
            raise FetchError("Invalid JSON response", request_url=url, original_error=e)

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close resources."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "EtherscanClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(address={self.config.watched_address}, chain_id={self.config.chain_id})>"
