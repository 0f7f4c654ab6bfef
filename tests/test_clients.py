import json

import httpx
import jwt
import pytest

from memor_rag.core.errors import EmbeddingError, NoteStoreError, SynthesisError
from memor_rag.embeddings.embedder import Embedder
from memor_rag.llm.client import LLMClient
from memor_rag.notes.client import NoteStoreClient

from conftest import TEST_SERVICE_SECRET


# ---------------------------------------------------------------------
# Embedder
# ---------------------------------------------------------------------

def _embedding_handler(requests):
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        requests.append(body)
        # Return records out of order; the client must sort by index.
        data = [
            {"index": i, "embedding": [float(i), 1.0]}
            for i in range(len(body["input"]))
        ]
        return httpx.Response(200, json={"data": list(reversed(data))})

    return handler


@pytest.mark.asyncio
async def test_embed_batch_preserves_input_order_across_batches():
    requests = []
    embedder = Embedder(
        api_key="sk-test",
        transport=httpx.MockTransport(_embedding_handler(requests)),
    )

    vectors = await embedder.embed_batch(["a", "b", "c"], batch_size=2)

    assert [len(r["input"]) for r in requests] == [2, 1]
    assert vectors == [[0.0, 1.0], [1.0, 1.0], [0.0, 1.0]]
    assert requests[0]["model"] == "text-embedding-3-small"


@pytest.mark.asyncio
async def test_embed_single_text():
    embedder = Embedder(
        api_key="sk-test",
        transport=httpx.MockTransport(_embedding_handler([])),
    )
    assert await embedder.embed("hello") == [0.0, 1.0]


@pytest.mark.asyncio
async def test_embed_http_error_raises_embedding_error():
    embedder = Embedder(
        api_key="sk-test",
        transport=httpx.MockTransport(lambda r: httpx.Response(500, json={})),
    )
    with pytest.raises(EmbeddingError):
        await embedder.embed("hello")


@pytest.mark.asyncio
async def test_embed_malformed_response_raises_embedding_error():
    embedder = Embedder(
        api_key="sk-test",
        transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"nope": []})),
    )
    with pytest.raises(EmbeddingError):
        await embedder.embed("hello")


@pytest.mark.asyncio
async def test_embed_empty_input_makes_no_request():
    def fail(request):
        raise AssertionError("no request expected")

    embedder = Embedder(api_key="sk-test", transport=httpx.MockTransport(fail))
    assert await embedder.embed_batch([]) == []


# ---------------------------------------------------------------------
# LLMClient
# ---------------------------------------------------------------------

def _chat_response(content):
    return httpx.Response(
        200,
        json={"choices": [{"message": {"role": "assistant", "content": content}}]},
    )


@pytest.mark.asyncio
async def test_generate_sends_single_user_message():
    seen = {}

    def handler(request):
        seen.update(json.loads(request.content))
        return _chat_response("  Your flight is at 9am.  ")

    llm = LLMClient(api_key="sk-test", transport=httpx.MockTransport(handler))
    answer = await llm.generate("prompt text")

    assert answer == "Your flight is at 9am."
    assert seen["messages"] == [{"role": "user", "content": "prompt text"}]
    assert seen["model"] == "gpt-3.5-turbo"
    assert seen["temperature"] == 0.5
    assert seen["max_tokens"] == 500


@pytest.mark.asyncio
async def test_generate_http_error_is_synthesis_error():
    llm = LLMClient(
        api_key="sk-test",
        transport=httpx.MockTransport(lambda r: httpx.Response(503, json={})),
    )
    with pytest.raises(SynthesisError):
        await llm.generate("prompt")


@pytest.mark.asyncio
async def test_generate_timeout_is_synthesis_error():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    llm = LLMClient(api_key="sk-test", transport=httpx.MockTransport(handler))
    with pytest.raises(SynthesisError):
        await llm.generate("prompt")


@pytest.mark.asyncio
async def test_generate_empty_answer_is_synthesis_error():
    llm = LLMClient(
        api_key="sk-test",
        transport=httpx.MockTransport(lambda r: _chat_response("   ")),
    )
    with pytest.raises(SynthesisError):
        await llm.generate("prompt")


@pytest.mark.asyncio
async def test_generate_malformed_response_is_synthesis_error():
    llm = LLMClient(
        api_key="sk-test",
        transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"choices": []})),
    )
    with pytest.raises(SynthesisError):
        await llm.generate("prompt")


# ---------------------------------------------------------------------
# NoteStoreClient
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_note_sends_service_token(settings):
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(
            200,
            json={"userId": "U1", "title": "Trip plan", "content": "Flight at 9am"},
        )

    client = NoteStoreClient("http://notes.local/", settings, transport=httpx.MockTransport(handler))
    note = await client.get_note("n1")

    assert note.id == "n1"
    assert note.user_id == "U1"
    assert seen["url"] == "http://notes.local/notes/n1"

    token = seen["auth"].removeprefix("Bearer ")
    payload = jwt.decode(token, TEST_SERVICE_SECRET, algorithms=["HS256"], audience="memor-notes")
    assert payload["iss"] == "memor-rag"
    assert payload["scope"] == ["notes_read"]


@pytest.mark.asyncio
async def test_get_missing_note_returns_none(settings):
    client = NoteStoreClient(
        "http://notes.local",
        settings,
        transport=httpx.MockTransport(lambda r: httpx.Response(404)),
    )
    assert await client.get_note("n1") is None


@pytest.mark.asyncio
async def test_note_store_errors_raise(settings):
    client = NoteStoreClient(
        "http://notes.local",
        settings,
        transport=httpx.MockTransport(lambda r: httpx.Response(500)),
    )
    with pytest.raises(NoteStoreError):
        await client.get_note("n1")


@pytest.mark.asyncio
async def test_malformed_note_raises(settings):
    client = NoteStoreClient(
        "http://notes.local",
        settings,
        transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"title": "no owner"})),
    )
    with pytest.raises(NoteStoreError):
        await client.get_note("n1")


@pytest.mark.asyncio
async def test_embed_non_json_body_raises_embedding_error():
    embedder = Embedder(
        api_key="sk-test",
        transport=httpx.MockTransport(lambda r: httpx.Response(200, text="<html>bad gateway</html>")),
    )
    with pytest.raises(EmbeddingError):
        await embedder.embed("hello")
