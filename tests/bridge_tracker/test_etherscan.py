"""
Tests for the Etherscan client.

============================================================
TEST SCENARIOS
============================================================
1. Request parameters for both feeds
2. Envelope unwrapping (OK, empty, rate limit, error)
3. Pagination stops on a short page
4. Retry on server errors, no retry on 4xx / rate limit
5. Fan-out of both feeds, whole fetch fails if one fails
6. HTTP status mapping
============================================================
"""

from unittest.mock import AsyncMock, patch

import aiohttp
import pytest

from bridge_tracker.config import TrackerConfig
from bridge_tracker.exceptions import (
    ConfigurationError,
    FetchError,
    RateLimitError,
    UpstreamError,
)
from bridge_tracker.models import FeedSource
from bridge_tracker.providers.etherscan import EtherscanClient


WATCHED = "0x0ca3a2fbc3d770b578223fbb6b062fa875a2ee75"


# ============================================================
# FIXTURES
# ============================================================

class FakeResponse:
    """Minimal stand-in for aiohttp.ClientResponse."""

    def __init__(self, status=200, payload=None, headers=None, text=""):
        self.status = status
        self._payload = payload
        self.headers = headers or {}
        self._text = text

    async def json(self, content_type=None):
        return self._payload

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Records GET calls and replays queued responses."""

    def __init__(self, responses):
        self._responses = list(responses)
        self.calls = []
        self.closed = False

    def get(self, url, params=None):
        self.calls.append((url, dict(params or {})))
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self):
        self.closed = True


def ok(rows):
    return {"status": "1", "message": "OK", "result": rows}


@pytest.fixture
def config():
    return TrackerConfig(
        watched_address=WATCHED,
        api_key="test-key",
        page_size=2,
        max_pages=3,
        max_retries=2,
    )


@pytest.fixture
def no_sleep():
    with patch("bridge_tracker.providers.etherscan.asyncio.sleep", new=AsyncMock()) as sleep:
        yield sleep


# ============================================================
# REQUESTS AND UNWRAPPING
# ============================================================

class TestRequests:
    """Tests for request parameters."""

    @pytest.mark.asyncio
    async def test_normal_feed_params(self, config):
        session = FakeSession([FakeResponse(payload=ok([]))])
        client = EtherscanClient(config, session=session)

        await client.fetch_normal()

        url, params = session.calls[0]
        assert url == "https://api.etherscan.io/v2/api"
        assert params["chainid"] == "1"
        assert params["module"] == "account"
        assert params["action"] == "txlist"
        assert params["address"] == WATCHED
        assert params["startblock"] == "0"
        assert params["endblock"] == "99999999"
        assert params["sort"] == "desc"
        assert params["apikey"] == "test-key"
        assert params["page"] == "1"
        assert params["offset"] == "2"

    @pytest.mark.asyncio
    async def test_internal_feed_action(self, config):
        session = FakeSession([FakeResponse(payload=ok([]))])
        client = EtherscanClient(config, session=session)

        await client.fetch_internal()

        assert session.calls[0][1]["action"] == "txlistinternal"

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        client = EtherscanClient(TrackerConfig(api_key=None), session=FakeSession([]))
        with pytest.raises(ConfigurationError):
            await client.fetch_streams()


class TestUnwrap:
    """Tests for Etherscan envelope handling."""

    def test_ok_returns_rows(self, config):
        client = EtherscanClient(config, session=FakeSession([]))
        assert client._unwrap(ok([{"hash": "0x1"}]), FeedSource.NORMAL) == [{"hash": "0x1"}]

    def test_no_transactions_is_empty(self, config):
        client = EtherscanClient(config, session=FakeSession([]))
        response = {"status": "0", "message": "No transactions found", "result": []}
        assert client._unwrap(response, FeedSource.NORMAL) == []

    def test_rate_limit_message(self, config):
        client = EtherscanClient(config, session=FakeSession([]))
        response = {"status": "0", "message": "NOTOK", "result": "Max rate limit reached"}
        with pytest.raises(RateLimitError):
            client._unwrap(response, FeedSource.NORMAL)

    def test_other_error(self, config):
        client = EtherscanClient(config, session=FakeSession([]))
        response = {"status": "0", "message": "NOTOK", "result": "Invalid API Key"}
        with pytest.raises(UpstreamError) as exc_info:
            client._unwrap(response, FeedSource.INTERNAL)
        assert exc_info.value.upstream_message == "Invalid API Key"

    def test_non_dict_response(self, config):
        client = EtherscanClient(config, session=FakeSession([]))
        with pytest.raises(UpstreamError):
            client._unwrap(["unexpected"], FeedSource.NORMAL)


# ============================================================
# PAGINATION AND RETRY
# ============================================================

def tx(tx_hash, block, trace_id=None):
    row = {"hash": tx_hash, "blockNumber": str(block)}
    if trace_id is not None:
        row["traceId"] = trace_id
    return row


class WindowedSession(FakeSession):
    """Rejects page * offset above 10000 the way Etherscan does."""

    def get(self, url, params=None):
        params = dict(params or {})
        if int(params.get("page", 1)) * int(params.get("offset", 0)) > 10000:
            self.calls.append((url, params))
            return FakeResponse(payload={
                "status": "0",
                "message": "NOTOK",
                "result": "Result window is too large, PageNo x Offset size must be less than or equal to 10000",
            })
        return super().get(url, params)


class TestPagination:
    """Tests for paged fetching over the block range."""

    @pytest.mark.asyncio
    async def test_short_first_page_is_one_request(self, config):
        session = FakeSession([FakeResponse(payload=ok([tx("0x1", 10)]))])
        client = EtherscanClient(config, session=session)

        rows = await client.fetch_normal()

        assert rows == [tx("0x1", 10)]
        assert len(session.calls) == 1

    @pytest.mark.asyncio
    async def test_walks_block_range_and_skips_boundary_rows(self, config):
        session = FakeSession([
            FakeResponse(payload=ok([tx("0x1", 10), tx("0x2", 9)])),
            FakeResponse(payload=ok([tx("0x2", 9), tx("0x3", 8)])),
            FakeResponse(payload=ok([tx("0x3", 8)])),
        ])
        client = EtherscanClient(config, session=session)

        rows = await client.fetch_normal()

        assert [r["hash"] for r in rows] == ["0x1", "0x2", "0x3"]
        assert [call[1]["endblock"] for call in session.calls] == ["99999999", "9", "8"]
        assert {call[1]["page"] for call in session.calls} == {"1"}

    @pytest.mark.asyncio
    async def test_stops_at_max_pages(self, config):
        session = FakeSession([
            FakeResponse(payload=ok([tx("a", 10), tx("b", 9)])),
            FakeResponse(payload=ok([tx("b", 9), tx("c", 8)])),
            FakeResponse(payload=ok([tx("c", 8), tx("d", 7)])),
        ])
        client = EtherscanClient(config, session=session)

        rows = await client.fetch_normal()

        assert [r["hash"] for r in rows] == ["a", "b", "c", "d"]
        assert len(session.calls) == 3

    @pytest.mark.asyncio
    async def test_full_page_in_one_block_moves_past_it(self, config):
        session = FakeSession([
            FakeResponse(payload=ok([tx("0x1", 10, "0"), tx("0x1", 10, "1")])),
            FakeResponse(payload=ok([tx("0x2", 9)])),
        ])
        client = EtherscanClient(config, session=session)

        rows = await client.fetch_internal()

        assert len(rows) == 3
        assert session.calls[1][1]["endblock"] == "9"

    @pytest.mark.asyncio
    async def test_page_without_block_numbers_stops(self, config):
        session = FakeSession([FakeResponse(payload=ok([{"hash": "0x1"}, {"hash": "0x2"}]))])
        client = EtherscanClient(config, session=session)

        rows = await client.fetch_normal()

        assert len(rows) == 2
        assert len(session.calls) == 1

    @pytest.mark.asyncio
    async def test_second_page_stays_inside_result_window(self):
        config = TrackerConfig(watched_address=WATCHED, api_key="test-key", max_pages=2)
        first = [tx(f"0xa{i}", 20) for i in range(5000)] + [tx(f"0xb{i}", 19) for i in range(5000)]
        second = [tx(f"0xb{i}", 19) for i in range(5000)] + [tx("0xc", 18)]
        session = WindowedSession([
            FakeResponse(payload=ok(first)),
            FakeResponse(payload=ok(second)),
        ])
        client = EtherscanClient(config, session=session)

        rows = await client.fetch_normal()

        assert len(rows) == 10001
        assert rows[-1]["hash"] == "0xc"
        assert [call[1]["page"] for call in session.calls] == ["1", "1"]
        assert session.calls[1][1]["endblock"] == "19"


class TestRetry:
    """Tests for retry behaviour."""

    @pytest.mark.asyncio
    async def test_retries_server_error(self, config, no_sleep):
        session = FakeSession([
            FakeResponse(status=502, text="bad gateway"),
            FakeResponse(payload=ok([{"hash": "0x1"}])),
        ])
        client = EtherscanClient(config, session=session)

        rows = await client.fetch_normal()

        assert rows == [{"hash": "0x1"}]
        assert len(session.calls) == 2
        no_sleep.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_retries_connection_error(self, config, no_sleep):
        session = FakeSession([
            aiohttp.ClientConnectionError("reset"),
            FakeResponse(payload=ok([])),
        ])
        client = EtherscanClient(config, session=session)

        assert await client.fetch_normal() == []
        assert len(session.calls) == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, config, no_sleep):
        session = FakeSession([FakeResponse(status=500), FakeResponse(status=500)])
        client = EtherscanClient(config, session=session)

        with pytest.raises(FetchError) as exc_info:
            await client.fetch_normal()

        assert exc_info.value.status_code == 500
        assert len(session.calls) == 2

    @pytest.mark.asyncio
    async def test_no_retry_on_client_error(self, config, no_sleep):
        session = FakeSession([FakeResponse(status=403, text="forbidden")])
        client = EtherscanClient(config, session=session)

        with pytest.raises(FetchError) as exc_info:
            await client.fetch_normal()

        assert exc_info.value.status_code == 403
        assert len(session.calls) == 1
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_retry_on_rate_limit(self, config, no_sleep):
        session = FakeSession([FakeResponse(status=429, headers={"Retry-After": "7"})])
        client = EtherscanClient(config, session=session)

        with pytest.raises(RateLimitError) as exc_info:
            await client.fetch_normal()

        assert exc_info.value.retry_after_seconds == 7
        assert len(session.calls) == 1


# ============================================================
# FAN-OUT
# ============================================================

class TestFetchStreams:
    """Tests for fetching both feeds together."""

    @pytest.mark.asyncio
    async def test_returns_both_feeds(self, config):
        client = EtherscanClient(config, session=FakeSession([]))
        with patch.object(client, "fetch_normal", AsyncMock(return_value=[{"hash": "0x1"}])), \
                patch.object(client, "fetch_internal", AsyncMock(return_value=[{"hash": "0x2"}])):
            feeds = await client.fetch_streams()

        assert feeds == {"normal": [{"hash": "0x1"}], "internal": [{"hash": "0x2"}]}

    @pytest.mark.asyncio
    async def test_one_failure_fails_all(self, config):
        client = EtherscanClient(config, session=FakeSession([]))
        with patch.object(client, "fetch_normal", AsyncMock(return_value=[{"hash": "0x1"}])), \
                patch.object(client, "fetch_internal", AsyncMock(side_effect=FetchError("down"))):
            with pytest.raises(FetchError):
                await client.fetch_streams()

    @pytest.mark.asyncio
    async def test_envelopes_passthrough(self, config):
        normal = ok([{"hash": "0x1"}])
        internal = {"status": "0", "message": "No transactions found", "result": []}
        session = FakeSession([FakeResponse(payload=normal), FakeResponse(payload=internal)])
        client = EtherscanClient(config, session=session)

        envelopes = await client.fetch_envelopes()

        assert envelopes == {"normal": normal, "internal": internal}
        assert "page" not in session.calls[0][1]


# ============================================================
# LIFECYCLE
# ============================================================

class TestLifecycle:
    """Tests for session ownership."""

    @pytest.mark.asyncio
    async def test_injected_session_not_closed(self, config):
        session = FakeSession([])
        async with EtherscanClient(config, session=session):
            pass
        assert session.closed is False

    @pytest.mark.asyncio
    async def test_health_check(self, config):
        session = FakeSession([FakeResponse(payload={"jsonrpc": "2.0", "id": 1, "result": "0x10"})])
        client = EtherscanClient(config, session=session)

        health = await client.health_check()

        assert health["status"] == "healthy"
        assert health["block_number"] == 16

    @pytest.mark.asyncio
    async def test_health_check_failure(self, config):
        session = FakeSession([FakeResponse(status=503)])
        client = EtherscanClient(config, session=session)

        health = await client.health_check()

        assert health["status"] == "unavailable"
