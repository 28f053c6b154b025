"""Tests for the REST clients using httpx.MockTransport."""

import json

import httpx
import pytest

from sentence_vault.clients import AnnotationClient, ThreadClient, VaultClient
from sentence_vault.errors import NotFoundError, TransientPersistenceError
from sentence_vault.models import SentenceMemoRequest, SentenceVaultRequest, ThreadType
from sentence_vault.services.annotations import AnnotationStore


def _mock(client, handler):
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


@pytest.mark.asyncio
async def test_thread_sentence_data_parses_snapshot():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "GET"
        assert request.url.path == "/threads/t1/sentence-data"
        return httpx.Response(200, json={"memos": {"a_0_0": "note"}, "highlights": ["a_0_0"], "extra": 1})

    client = _mock(AnnotationClient(base_url="http://test/", timeout=5), handler)
    try:
        data = await client.thread_sentence_data("t1")
    finally:
        await client.close()
    assert data.memos == {"a_0_0": "note"}
    assert data.highlights == ["a_0_0"]


@pytest.mark.asyncio
async def test_upsert_memo_omits_empty_fields():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"success": True, "message": "saved"})

    client = _mock(AnnotationClient(base_url="http://test", timeout=5), handler)
    try:
        result = await client.upsert_memo(
            SentenceMemoRequest(sentence_id="a_0_0", thread_id="t1", thread_type=ThreadType.PROCEED, content="hi")
        )
    finally:
        await client.close()
    assert result.success is True
    assert bodies == [{"sentence_id": "a_0_0", "thread_id": "t1", "thread_type": "proceed", "content": "hi"}]


@pytest.mark.asyncio
async def test_server_error_becomes_transient_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"detail": "database locked"})

    client = _mock(AnnotationClient(base_url="http://test", timeout=5), handler)
    try:
        with pytest.raises(TransientPersistenceError) as exc_info:
            await client.delete_highlight("a_0_0")
    finally:
        await client.close()
    assert exc_info.value.status_code == 500
    assert "database locked" in str(exc_info.value)


@pytest.mark.asyncio
async def test_not_found_and_transport_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.startswith("/memos/"):
            return httpx.Response(404, json={"detail": "Memo not found"})
        if request.url.path.startswith("/threads/"):
            return httpx.Response(404)
        raise httpx.ConnectError("connection refused", request=request)

    annotations = _mock(AnnotationClient(base_url="http://test", timeout=5), handler)
    threads = _mock(ThreadClient(base_url="http://test", timeout=5), handler)
    try:
        assert await annotations.get_memo("a_0_0") is None
        with pytest.raises(NotFoundError):
            await threads.delete_thread("t1")
        with pytest.raises(TransientPersistenceError):
            await threads.list_personas()
    finally:
        await annotations.close()
        await threads.close()


@pytest.mark.asyncio
async def test_list_personas_and_threads():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/personas":
            return httpx.Response(200, json={"freud": {"name": "Freud", "color": "#fff"}, "jung": {"name": "Jung"}})
        assert request.url.path == "/threads/freud/proceed"
        return httpx.Response(
            200,
            json=[
                {
                    "id": "proceed_freud_1700000000000",
                    "persona_id": "freud",
                    "thread_type": "proceed",
                    "messages": [{"role": "user", "content": "Hi", "timestamp": "2024-01-01T00:00:00"}],
                }
            ],
        )

    client = _mock(ThreadClient(base_url="http://test", timeout=5), handler)
    try:
        personas = await client.list_personas()
        threads = await client.list_persona_threads_by_type("freud", ThreadType.PROCEED)
    finally:
        await client.close()
    assert list(personas) == ["freud", "jung"]
    assert personas["freud"].color == "#fff"
    assert threads[0].thread_type is ThreadType.PROCEED
    assert threads[0].messages[0].content == "Hi"


@pytest.mark.asyncio
async def test_save_content_routes_by_thread_type():
    paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(200, json={"success": True})

    client = _mock(ThreadClient(base_url="http://test", timeout=5), handler)
    try:
        await client.save_content(ThreadType.PROCEED, "freud", "text")
        await client.save_content(ThreadType.INTERPRETATION, "freud", "text")
        with pytest.raises(ValueError):
            await client.save_content(ThreadType.VERBALIZATION, "freud", "text")
    finally:
        await client.close()
    assert paths == ["/proceed/save", "/interpretations/save"]


@pytest.mark.asyncio
async def test_vault_save_sentences_returns_saved_items():
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert body["highlight_colors"] == ["yellow", None]
        return httpx.Response(
            200,
            json={
                "success": True,
                "saved_items": [
                    {"id": "v1", "sentence": "Alpha one", "is_highlighted": True, "highlight_color": "yellow"},
                    {"id": "v2", "sentence": "Alpha two"},
                ],
            },
        )

    client = _mock(VaultClient(base_url="http://test", timeout=5), handler)
    request = SentenceVaultRequest(
        sentences=["Alpha one", "Alpha two"],
        source_message_id="sentence_freud",
        highlight_states=[True, False],
        highlight_colors=["yellow", None],
        memo_contents=[None, None],
    )
    try:
        items = await client.save_sentences(request)
    finally:
        await client.close()
    assert [item.id for item in items] == ["v1", "v2"]
    assert items[0].is_highlighted is True


@pytest.mark.asyncio
async def test_malformed_success_bodies_are_transient_failures():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/memos":
            return httpx.Response(200, text="OK")
        if request.url.path == "/threads/freud":
            return httpx.Response(200, json={"threads": []})
        return httpx.Response(200, json={"memos": "not a map", "highlights": []})

    annotations = _mock(AnnotationClient(base_url="http://test", timeout=5), handler)
    threads = _mock(ThreadClient(base_url="http://test", timeout=5), handler)
    try:
        with pytest.raises(TransientPersistenceError):
            await annotations.upsert_memo(
                SentenceMemoRequest(sentence_id="a_0_0", thread_id="t1", thread_type=ThreadType.SENTENCE, content="x")
            )
        with pytest.raises(TransientPersistenceError):
            await annotations.thread_sentence_data("t1")
        with pytest.raises(TransientPersistenceError):
            await threads.list_persona_threads("freud")
    finally:
        await annotations.close()
        await threads.close()


@pytest.mark.asyncio
async def test_store_reloads_when_memo_response_is_not_json(notifier):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(200, text="OK")
        return httpx.Response(200, json={"memos": {}, "highlights": ["a_0_1"]})

    client = _mock(AnnotationClient(base_url="http://test", timeout=5), handler)
    store = AnnotationStore(client, notifier)
    try:
        assert await store.set_memo("t1", ThreadType.SENTENCE, "a_0_0", "x") is False
    finally:
        await client.close()
    assert store.memos("t1") == {}
    assert store.highlighted("t1") == frozenset({"a_0_1"})
    assert notifier.last == "Failed to save memo"
