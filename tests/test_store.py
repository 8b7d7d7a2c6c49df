"""Tests for the HelixDB client, response parsers and in-process caches."""

import time
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from ontomem.config import HelixConfig
from ontomem.errors import ConnectionFailed, NotFound, QueryError, RetryExhausted
from ontomem.store import records
from ontomem.store.cache import EmbeddingCache, LruTtlCache, make_key
from ontomem.store.helix import HelixClient, is_miss


def _mock_client(mock_client_cls, *, status=200, json_body=None, text="", content=b"{}",
                 side_effect=None):
    mock_response = MagicMock()
    mock_response.status_code = status
    mock_response.text = text
    mock_response.content = content
    mock_response.json.return_value = json_body

    mock_client = AsyncMock()
    if side_effect is not None:
        mock_client.post.side_effect = side_effect
    else:
        mock_client.post.return_value = mock_response
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    mock_client_cls.return_value = mock_client
    return mock_client, mock_response


def _client(**kw) -> HelixClient:
    return HelixClient(HelixConfig(host="helix.test", port=7000), **kw)


# ---------------------------------------------------------------------------
# HelixClient
# ---------------------------------------------------------------------------

class TestHelixClient:
    """Named queries over HTTP with retries."""

    def test_base_url_from_config(self):
        client = _client()
        assert client.base_url == "http://helix.test:7000"
        assert client.max_retries == 3
        assert "helix.test" in repr(client)

    @pytest.mark.asyncio
    @patch("ontomem.store.helix.httpx.AsyncClient")
    async def test_posts_params_as_json(self, mock_client_cls):
        mock_client, _ = _mock_client(mock_client_cls, json_body={"memory": {"id": "n1"}})

        result = await _client().execute_query("getMemory", {"memory_id": "mem_1"})

        assert result == {"memory": {"id": "n1"}}
        mock_client.post.assert_called_once()
        args, kwargs = mock_client.post.call_args
        assert args[0] == "http://helix.test:7000/getMemory"
        assert kwargs["json"] == {"memory_id": "mem_1"}

    @pytest.mark.asyncio
    @patch("ontomem.store.helix.httpx.AsyncClient")
    async def test_missing_params_send_empty_object(self, mock_client_cls):
        mock_client, _ = _mock_client(mock_client_cls, json_body={"count": 0})
        await _client().execute_query("countAllMemories")
        assert mock_client.post.call_args[1]["json"] == {}

    @pytest.mark.asyncio
    @patch("ontomem.store.helix.httpx.AsyncClient")
    async def test_empty_body_is_none(self, mock_client_cls):
        _mock_client(mock_client_cls, content=b"")
        assert await _client().execute_query("linkChunks", {}) is None

    @pytest.mark.asyncio
    @patch("ontomem.store.helix.asyncio.sleep", new_callable=AsyncMock)
    @patch("ontomem.store.helix.httpx.AsyncClient")
    async def test_miss_is_not_retried(self, mock_client_cls, mock_sleep):
        mock_client, _ = _mock_client(mock_client_cls, status=500, text="No value found for key")

        with pytest.raises(NotFound):
            await _client().execute_query("getMemory", {"memory_id": "nope"})
        assert mock_client.post.call_count == 1
        mock_sleep.assert_not_called()

    @pytest.mark.asyncio
    @patch("ontomem.store.helix.asyncio.sleep", new_callable=AsyncMock)
    @patch("ontomem.store.helix.httpx.AsyncClient")
    async def test_server_error_retried_then_exhausted(self, mock_client_cls, mock_sleep):
        mock_client, _ = _mock_client(mock_client_cls, status=500, text="internal boom")

        with pytest.raises(RetryExhausted) as exc:
            await _client().execute_query("addMemory", {})
        assert exc.value.attempts == 3
        assert isinstance(exc.value.last_error, QueryError)
        assert mock_client.post.call_count == 3
        # two waits between three attempts, doubling
        delays = [c.args[0] for c in mock_sleep.call_args_list]
        assert delays == [0.1, 0.2]

    @pytest.mark.asyncio
    @patch("ontomem.store.helix.asyncio.sleep", new_callable=AsyncMock)
    @patch("ontomem.store.helix.httpx.AsyncClient")
    async def test_backoff_capped_at_max_delay(self, mock_client_cls, mock_sleep):
        _mock_client(mock_client_cls, status=503, text="busy")
        client = _client(max_retries=5, initial_delay=1.0, max_delay=2.5)

        with pytest.raises(RetryExhausted):
            await client.execute_query("addMemory", {})
        delays = [c.args[0] for c in mock_sleep.call_args_list]
        assert delays == [1.0, 2.0, 2.5, 2.5]

    @pytest.mark.asyncio
    @patch("ontomem.store.helix.asyncio.sleep", new_callable=AsyncMock)
    @patch("ontomem.store.helix.httpx.AsyncClient")
    async def test_recovers_after_transient_failure(self, mock_client_cls, mock_sleep):
        ok = MagicMock(status_code=200, content=b"{}", text="")
        ok.json.return_value = {"success": True}
        mock_client, _ = _mock_client(mock_client_cls)
        mock_client.post.side_effect = [httpx.ConnectError("refused"), ok]

        result = await _client().execute_query("softDeleteMemory", {})
        assert result == {"success": True}
        assert mock_client.post.call_count == 2

    @pytest.mark.asyncio
    @patch("ontomem.store.helix.httpx.AsyncClient")
    async def test_no_retry_raises_connection_failed(self, mock_client_cls):
        mock_client, _ = _mock_client(mock_client_cls, side_effect=httpx.ConnectError("refused"))

        with pytest.raises(ConnectionFailed, match="cannot reach"):
            await _client().execute_query_no_retry("getMemory", {})
        assert mock_client.post.call_count == 1

    @pytest.mark.asyncio
    @patch("ontomem.store.helix.httpx.AsyncClient")
    async def test_timeout_is_connection_failure(self, mock_client_cls):
        _mock_client(mock_client_cls, side_effect=httpx.ReadTimeout("slow"))
        with pytest.raises(ConnectionFailed, match="timed out"):
            await _client().execute_query_no_retry("getMemory", {})

    @pytest.mark.asyncio
    @patch("ontomem.store.helix.httpx.AsyncClient")
    async def test_invalid_json(self, mock_client_cls):
        _, mock_response = _mock_client(mock_client_cls)
        mock_response.json.side_effect = ValueError("Expecting value")

        with pytest.raises(QueryError, match="invalid JSON"):
            await _client().execute_query_no_retry("getMemory", {})

    @pytest.mark.asyncio
    @patch("ontomem.store.helix.httpx.AsyncClient")
    async def test_query_error_keeps_status(self, mock_client_cls):
        _mock_client(mock_client_cls, status=422, text="bad field")
        with pytest.raises(QueryError) as exc:
            await _client().execute_query_no_retry("addMemory", {})
        assert exc.value.status_code == 422
        assert not isinstance(exc.value, NotFound)


class TestHealthCheck:
    """A reachable server is healthy even if the health route is missing."""

    @pytest.mark.asyncio
    @patch("ontomem.store.helix.httpx.AsyncClient")
    async def test_ok(self, mock_client_cls):
        _mock_client(mock_client_cls, json_body={})
        assert await _client().health_check() is True

    @pytest.mark.asyncio
    @patch("ontomem.store.helix.httpx.AsyncClient")
    async def test_404_is_alive(self, mock_client_cls):
        _mock_client(mock_client_cls, status=404, text="route missing")
        assert await _client().health_check() is True

    @pytest.mark.asyncio
    @patch("ontomem.store.helix.httpx.AsyncClient")
    async def test_miss_is_alive(self, mock_client_cls):
        _mock_client(mock_client_cls, status=500, text="Not Found")
        assert await _client().health_check() is True

    @pytest.mark.asyncio
    @patch("ontomem.store.helix.httpx.AsyncClient")
    async def test_500_is_unhealthy(self, mock_client_cls):
        _mock_client(mock_client_cls, status=500, text="panic")
        assert await _client().health_check() is False

    @pytest.mark.asyncio
    @patch("ontomem.store.helix.httpx.AsyncClient")
    async def test_unreachable(self, mock_client_cls):
        _mock_client(mock_client_cls, side_effect=httpx.ConnectError("refused"))
        assert await _client().health_check() is False


def test_is_miss_markers():
    assert is_miss("Couldn't find memory")
    assert is_miss("NO VALUE for id")
    assert is_miss("memory not found")
    assert not is_miss("syntax error near MATCH")


# ---------------------------------------------------------------------------
# records
# ---------------------------------------------------------------------------

class TestRecords:
    """Loose response parsing."""

    def test_vector_hits_dedupes_chunk_parents(self):
        result = {
            "memories": [{"memory_id": "a"}, {"memory_id": "b"}],
            "parent_memories": [{"memory_id": "b", "score": 0.1}, {"memory_id": "c"}],
        }
        hits = records.vector_hits(result)
        assert [h["memory_id"] for h in hits] == ["a", "b", "c"]
        assert "score" not in hits[1]

    def test_vector_hits_accepts_single_record_and_list(self):
        assert records.vector_hits({"memories": {"memory_id": "x"}})[0]["memory_id"] == "x"
        assert [h["memory_id"] for h in records.vector_hits([{"memory_id": "y"}, "junk"])] == ["y"]
        assert records.vector_hits(None) == []

    def test_hit_cosine_prefers_vector(self):
        hit = {"vector": [1.0, 0.0], "score": 0.1}
        assert records.hit_cosine([1.0, 0.0], hit) == pytest.approx(1.0)
        assert records.hit_cosine([1.0, 0.0], {"score": "0.4"}) == pytest.approx(0.4)
        assert records.hit_cosine([1.0, 0.0], {"score": "n/a"}) == 0.0

    def test_searchable(self):
        assert records.is_searchable({})
        assert not records.is_searchable({"is_deleted": 1})
        assert not records.is_searchable({"valid_until": "2000-01-01T00:00:00+00:00"})
        assert records.is_searchable({"valid_until": "2999-01-01T00:00:00Z"})

    def test_logical_connections_fills_every_key(self):
        out = records.logical_connections({"implies_out": {"memory_id": "a"}, "because_in": None})
        assert out["implies_out"] == [{"memory_id": "a"}]
        assert out["because_in"] == []
        assert set(out) == set(records.LOGICAL_KEYS)

    def test_deleted_count_variants(self):
        assert records.deleted_count({"deleted_count": 4}) == 4
        assert records.deleted_count({"count": 2.0}) == 2
        assert records.deleted_count({"deleted": True}) == 1
        assert records.deleted_count(7) == 7
        assert records.deleted_count("lots") == 0

    def test_as_bool(self):
        assert records.as_bool({"success": True})
        assert not records.as_bool({"success": False})
        assert records.as_bool({"memory": {}})
        assert not records.as_bool({})


# ---------------------------------------------------------------------------
# caches
# ---------------------------------------------------------------------------

class TestLruTtlCache:
    """Bounded LRU with expiry."""

    def test_evicts_least_recently_used(self):
        cache = LruTtlCache(max_size=2, ttl=60)
        cache.put("a", 1)
        cache.put("b", 2)
        assert cache.get("a") == 1
        cache.put("c", 3)
        assert "b" not in cache
        assert cache.get("a") == 1
        assert cache.evictions == 1

    def test_expired_entries_miss(self):
        cache = LruTtlCache(max_size=10, ttl=0.0)
        cache.put("a", 1)
        assert cache.get("a") is None
        assert len(cache) == 0

    def test_hit_rate_and_invalidate(self):
        cache = LruTtlCache()
        cache.put("k", "v")
        cache.get("k")
        cache.get("missing")
        assert cache.hit_rate() == 0.5
        assert cache.invalidate("k") is True
        assert cache.invalidate("k") is False
        stats = cache.stats()
        assert stats["invalidations"] == 1
        assert stats["size"] == 0


class TestEmbeddingCache:
    def test_roundtrip_and_oldest_eviction(self):
        cache = EmbeddingCache(max_size=2)
        cache.put("one", [1.0])
        time.sleep(0.001)
        cache.put("two", [2.0])
        cache.put("three", [3.0])
        assert cache.get("one") is None
        assert cache.get("three") == [3.0]
        assert cache.stats()["size"] == 2

    def test_ttl(self):
        cache = EmbeddingCache(ttl=0.0)
        cache.put("x", [0.5])
        assert cache.get("x") is None


def test_make_key_is_stable_and_sensitive():
    k1 = make_key("query", [0.1, 0.2], 10)
    assert k1 == make_key("query", [0.1, 0.2], 10)
    assert k1 != make_key("query", [0.1, 0.3], 10)
    assert k1 != make_key("query", [0.1, 0.2], 11)
