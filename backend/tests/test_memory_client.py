"""
Klara Backend — mem0 Memory Client Tests
==========================================

What we test:
    ✅ Search payload (user filter, top_k, rerank) and Token auth header
    ✅ Both list payload shapes: bare list and {"results": [...]}
    ✅ Chat memory write payload (run_id, metadata, infer)
    ✅ Session history: exact AND filter, cut to the limit
    ✅ Listing follows `next` page by page, with a page cap
    ✅ Error mapping: non-2xx, transport errors, non-JSON bodies
    ✅ Unconfigured client raises without touching the network
"""

import httpx
import pytest

from app.exceptions import MemoryServiceError
from app.services.memory_client import LIST_PAGE_SIZE, MAX_LIST_PAGES, MemoryClient


def _client(handler, api_key: str = "test-mem0-key") -> MemoryClient:
    return MemoryClient(api_key, httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestSearch:

    @pytest.mark.asyncio
    async def test_search_payload_and_auth(self, memory_client, upstream):
        upstream.search_results = [
            {"id": "m1", "memory": "Likes green tea", "user_id": "user_a"},
            {"id": "m2", "memory": "Lives in Oslo", "user_id": "user_a"},
        ]

        records = await memory_client.search("user_a", "what do I drink?", top_k=5)

        assert [r.id for r in records] == ["m1", "m2"]
        assert records[0].memory == "Likes green tea"

        (request,) = upstream.requests
        assert request.method == "POST"
        assert request.url.path == "/v2/memories/search/"
        assert request.headers["Authorization"] == "Token test-mem0-key"
        assert upstream.body(request) == {
            "query": "what do I drink?",
            "filters": {"user_id": "user_a"},
            "top_k": 5,
            "rerank": True,
        }

    @pytest.mark.asyncio
    async def test_results_wrapper_is_accepted(self):
        def handler(request):
            return httpx.Response(200, json={"results": [{"id": "m1", "memory": "x"}]})

        records = await _client(handler).search("user_a", "q")
        assert [r.id for r in records] == ["m1"]

    @pytest.mark.asyncio
    async def test_unknown_fields_are_ignored(self):
        def handler(request):
            return httpx.Response(200, json=[{"id": "m1", "memory": "x", "score": 0.93, "owner": "u"}])

        (record,) = await _client(handler).search("user_a", "q")
        assert record.memory == "x"

    @pytest.mark.asyncio
    async def test_non_2xx_raises(self, memory_client, upstream):
        upstream.search_status = 502

        with pytest.raises(MemoryServiceError) as exc_info:
            await memory_client.search("user_a", "q")

        assert exc_info.value.status_code == 502
        assert exc_info.value.body == "search unavailable"

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(MemoryServiceError):
            await _client(handler).search("user_a", "q")

    @pytest.mark.asyncio
    async def test_non_json_body_raises(self):
        def handler(request):
            return httpx.Response(200, text="not json")

        with pytest.raises(MemoryServiceError):
            await _client(handler).search("user_a", "q")


class TestUnconfigured:

    @pytest.mark.asyncio
    async def test_no_key_raises_without_a_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=[])

        client = _client(handler, api_key="")

        assert client.configured is False
        with pytest.raises(MemoryServiceError):
            await client.search("user_a", "q")
        with pytest.raises(MemoryServiceError):
            await client.add_chat_memory("user_a", "s1", "hello", "user")
        assert calls == []


class TestWrites:

    @pytest.mark.asyncio
    async def test_add_chat_memory_payload(self, memory_client, upstream):
        await memory_client.add_chat_memory("user_a", "session-1", "I like tea", "user")

        (request,) = upstream.calls("/v1/memories/", method="POST")
        body = upstream.body(request)
        assert body["messages"] == [{"role": "user", "content": "I like tea"}]
        assert body["user_id"] == "user_a"
        assert body["run_id"] == "session-1"
        assert body["metadata"]["session_id"] == "session-1"
        assert "timestamp" in body["metadata"]
        assert body["infer"] is True

    @pytest.mark.asyncio
    async def test_delete_memory_accepts_204(self, memory_client, upstream):
        assert await memory_client.delete_memory("m1") is None
        (request,) = upstream.requests
        assert request.method == "DELETE"
        assert request.url.path == "/v1/memories/m1/"

    @pytest.mark.asyncio
    async def test_batch_delete_sends_ids_in_body(self, memory_client, upstream):
        await memory_client.batch_delete(["m1", "m2"])

        (request,) = upstream.requests
        assert request.method == "DELETE"
        assert request.url.path == "/v1/batch/"
        assert upstream.body(request) == {"memory_ids": ["m1", "m2"]}


class TestListing:

    @pytest.mark.asyncio
    async def test_get_user_memories_filters_by_user(self, memory_client, upstream):
        upstream.listed_memories = [{"id": "m1", "memory": "x", "user_id": "user_a"}]

        records = await memory_client.get_user_memories("user_a")

        assert [r.id for r in records] == ["m1"]
        (request,) = upstream.requests
        assert upstream.body(request) == {"filters": {"user_id": "user_a"}}

    @pytest.mark.asyncio
    async def test_session_memories_use_exact_filter_and_limit(self, memory_client, upstream):
        upstream.listed_memories = [{"id": f"m{i}", "memory": f"fact {i}"} for i in range(15)]

        records = await memory_client.get_session_memories("user_a", "session-1", limit=10)

        assert len(records) == 10
        assert records[0].id == "m0"
        (request,) = upstream.requests
        assert request.url.path == "/v2/memories/"
        assert upstream.body(request) == {
            "filters": {"AND": [{"user_id": "user_a"}, {"run_id": "session-1"}]}
        }
        assert request.url.params["page"] == "1"
        assert request.url.params["page_size"] == "10"

    @pytest.mark.asyncio
    async def test_listing_follows_next_until_empty(self):
        requests = []

        def handler(request):
            requests.append(request)
            page = int(request.url.params["page"])
            next_url = f"https://api.mem0.ai/v2/memories/?page={page + 1}" if page < 3 else None
            return httpx.Response(
                200, json={"results": [{"id": f"m{page}", "memory": "x"}], "next": next_url}
            )

        records = await _client(handler).get_user_memories("user_a")

        assert [r.id for r in records] == ["m1", "m2", "m3"]
        assert [r.url.params["page"] for r in requests] == ["1", "2", "3"]
        assert {r.url.params["page_size"] for r in requests} == {str(LIST_PAGE_SIZE)}

    @pytest.mark.asyncio
    async def test_bare_list_is_a_single_page(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=[{"id": "m1", "memory": "x"}])

        records = await _client(handler).get_user_memories("user_a")

        assert [r.id for r in records] == ["m1"]
        assert len(requests) == 1

    @pytest.mark.asyncio
    async def test_listing_stops_at_the_page_cap(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(
                200, json={"results": [{"id": "m", "memory": "x"}], "next": "https://more"}
            )

        records = await _client(handler).get_user_memories("user_a")

        assert len(requests) == MAX_LIST_PAGES
        assert len(records) == MAX_LIST_PAGES

    @pytest.mark.asyncio
    async def test_get_memory_404_keeps_status(self, memory_client):
        with pytest.raises(MemoryServiceError) as exc_info:
            await memory_client.get_memory("missing")
        assert exc_info.value.status_code == 404
