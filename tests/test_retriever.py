import asyncio
from unittest.mock import AsyncMock

import pytest

from memor_rag.core.errors import AuthorizationMissing, IndexOperationError
from memor_rag.index.models import NoteMetadata, RetrievedDocument
from memor_rag.retrieval.retriever import Retriever, prepare_query


def _doc(user_id="U1", note_id="n1", content="Trip plan\n\nFlight at 9am"):
    return RetrievedDocument(
        content=content,
        metadata=NoteMetadata(note_id=note_id, user_id=user_id, title="Trip plan"),
    )


@pytest.fixture
def fake_embedder():
    embedder = AsyncMock()
    embedder.embed.return_value = [0.1, 0.2, 0.3]
    return embedder


def test_prepare_query_trims_and_caps():
    assert prepare_query("  hello  ") == "hello"
    assert prepare_query("  " + "x" * 400) == "x" * 300


@pytest.mark.asyncio
async def test_every_query_is_filtered_by_user(fake_embedder):
    index = AsyncMock()
    index.similarity_search.return_value = [_doc()]
    retriever = Retriever(index, fake_embedder)

    result = await retriever.retrieve("when is my flight", "U1")

    assert result == [_doc()]
    index.similarity_search.assert_awaited_once_with([0.1, 0.2, 0.3], 4, {"user_id": "U1"})


@pytest.mark.asyncio
async def test_query_is_capped_before_embedding(fake_embedder):
    index = AsyncMock()
    index.similarity_search.return_value = []
    retriever = Retriever(index, fake_embedder)

    await retriever.retrieve("y" * 1000, "U1")

    fake_embedder.embed.assert_awaited_once_with("y" * 300)


@pytest.mark.asyncio
async def test_scoping_returns_only_callers_notes(embedder, index):
    meta_a = NoteMetadata(note_id="a1", user_id="A", title="Trip plan")
    meta_b = NoteMetadata(note_id="b1", user_id="B", title="Trip plan")
    await index.upsert("va", await embedder.embed("trip flight"), meta_a, "trip flight")
    await index.upsert("vb", await embedder.embed("trip flight"), meta_b, "trip flight")

    retriever = Retriever(index, embedder)
    result = await retriever.retrieve("trip flight", "A")

    assert [d.metadata.user_id for d in result] == ["A"]


@pytest.mark.asyncio
async def test_degrades_k_until_success(fake_embedder):
    index = AsyncMock()
    index.similarity_search.side_effect = [
        IndexOperationError("k=4"),
        IndexOperationError("k=3"),
        IndexOperationError("k=2"),
        [_doc()],
    ]
    retriever = Retriever(index, fake_embedder)

    result = await retriever.retrieve("q", "U1", k=4)

    assert len(result) == 1
    ks = [call.args[1] for call in index.similarity_search.await_args_list]
    assert ks == [4, 3, 2, 1]
    # The query is embedded once regardless of retries.
    fake_embedder.embed.assert_awaited_once()


@pytest.mark.asyncio
async def test_failure_at_k_one_propagates(fake_embedder):
    index = AsyncMock()
    index.similarity_search.side_effect = IndexOperationError("down")
    retriever = Retriever(index, fake_embedder)

    with pytest.raises(IndexOperationError):
        await retriever.retrieve("q", "U1", k=2)

    assert index.similarity_search.await_count == 2


@pytest.mark.asyncio
async def test_backend_exception_is_treated_as_index_failure(fake_embedder):
    index = AsyncMock()
    index.similarity_search.side_effect = [ConnectionError("reset"), [_doc()]]
    retriever = Retriever(index, fake_embedder)

    result = await retriever.retrieve("q", "U1", k=2)

    assert len(result) == 1


@pytest.mark.asyncio
async def test_index_timeout_takes_degradation_path(fake_embedder):
    calls = []

    async def slow_then_fast(vector, k, filter):
        calls.append(k)
        if k > 1:
            await asyncio.sleep(1)
        return [_doc()]

    index = AsyncMock()
    index.similarity_search.side_effect = slow_then_fast
    retriever = Retriever(index, fake_embedder, index_timeout=0.01)

    result = await retriever.retrieve("q", "U1", k=2)

    assert calls == [2, 1]
    assert len(result) == 1


@pytest.mark.asyncio
async def test_missing_user_is_rejected_before_embedding(fake_embedder):
    retriever = Retriever(AsyncMock(), fake_embedder)

    with pytest.raises(AuthorizationMissing):
        await retriever.retrieve("q", "")

    fake_embedder.embed.assert_not_awaited()


@pytest.mark.asyncio
async def test_blank_query_returns_nothing(fake_embedder):
    index = AsyncMock()
    retriever = Retriever(index, fake_embedder)

    assert await retriever.retrieve("   ", "U1") == []
    index.similarity_search.assert_not_awaited()


@pytest.mark.asyncio
async def test_k_below_one_is_rejected(fake_embedder):
    retriever = Retriever(AsyncMock(), fake_embedder)

    with pytest.raises(ValueError):
        await retriever.retrieve("q", "U1", k=0)
