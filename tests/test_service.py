from unittest.mock import AsyncMock

import pytest

from memor_rag.container import build_container
from memor_rag.core.errors import AuthorizationMissing, InvalidRequest, SynthesisError
from memor_rag.notes.store import InMemoryNoteStore

from conftest import ConceptEmbedder, make_note, make_settings


@pytest.fixture
def llm():
    mock = AsyncMock()
    mock.generate.return_value = "Your flight is at 9am."
    return mock


@pytest.fixture
def container(llm):
    return build_container(
        make_settings(),
        embedder=ConceptEmbedder(),
        llm=llm,
        note_store=InMemoryNoteStore(),
    )


@pytest.mark.asyncio
async def test_trip_plan_end_to_end(container, llm):
    await container.start()
    try:
        container.note_store.put(
            make_note(note_id="trip", user_id="U1", title="Trip plan", content="Flight at 9am, hotel booked")
        )
        await container.synchronizer.drain()

        gate_results = []
        original = container.gate.is_relevant

        async def spy(query, docs):
            result = await original(query, docs)
            gate_results.append(result)
            return result

        container.gate.is_relevant = spy
        service = container.service

        u1 = await service.query_notes("when is my flight", "U1")
        assert u1.has_relevant_context is True
        assert u1.answer
        assert [d.metadata.note_id for d in u1.relevant_notes] == ["trip"]
        assert "Flight at 9am" in llm.generate.await_args.args[0]

        u2 = await service.query_notes("when is my flight", "U2")
        assert u2.relevant_notes == []
        assert u2.has_relevant_context is False

        assert gate_results == [True, False]
        llm.generate.assert_awaited_once()
    finally:
        await container.close()


@pytest.mark.asyncio
async def test_off_topic_notes_are_not_cited(container, llm):
    await container.service.add_document("Buy milk and eggs", {"title": "Groceries"}, "U1")

    answer = await container.service.query_notes("when is my flight", "U1")

    assert answer.has_relevant_context is False
    assert answer.relevant_notes == []
    assert answer.answer == (
        "I don't know anything about when is my flight. "
        "There is no relevant information in your notes."
    )
    llm.generate.assert_not_awaited()


@pytest.mark.asyncio
async def test_missing_user_checked_before_any_work(container):
    container.embedder.calls.clear()

    with pytest.raises(AuthorizationMissing):
        await container.service.query_notes("when is my flight", None)

    assert container.embedder.calls == []


@pytest.mark.asyncio
async def test_empty_query_is_invalid(container):
    with pytest.raises(InvalidRequest):
        await container.service.query_notes("  ", "U1")


@pytest.mark.asyncio
async def test_synthesis_failure_propagates(container, llm):
    llm.generate.side_effect = SynthesisError("Generation failed: ReadTimeout")
    await container.service.add_document("flight at 9am", {}, "U1")

    with pytest.raises(SynthesisError):
        await container.service.query_notes("when is my flight", "U1")


@pytest.mark.asyncio
async def test_add_document_never_replaces(container):
    first = await container.service.add_document("flight at 9am", {"title": "a"}, "U1")
    second = await container.service.add_document("flight at 10am", {"title": "a"}, "U1")

    assert first != second
    assert len(container.index) == 2


@pytest.mark.asyncio
async def test_add_document_cannot_claim_a_note_id(container):
    await container.start()
    try:
        container.note_store.put(make_note(note_id="n1", user_id="U1"))
        await container.synchronizer.drain()

        await container.service.add_document("evil", {"noteId": "n1", "note_id": "n1"}, "U2")
        await container.service.add_document("mine", {"noteId": "n1"}, "U1")

        matches = await container.index.query_by_filter({"note_id": "n1"}, top_k=10)
        assert [m.metadata.user_id for m in matches] == ["U1"]

        # The manual documents survive the note's own lifecycle.
        container.note_store.delete("n1")
        await container.synchronizer.drain()
        assert len(container.index) == 2
    finally:
        await container.close()


@pytest.mark.asyncio
async def test_add_document_truncates_content(container):
    await container.service.add_document("a" * 2500, {}, "U1")

    (doc,) = container.index._docs.values()
    assert doc.content == "a" * 2000 + "..."


@pytest.mark.asyncio
async def test_add_document_forces_owner(container):
    await container.service.add_document("flight", {"user_id": "U9", "userId": "U9"}, "U1")

    (doc,) = container.index._docs.values()
    assert doc.metadata.user_id == "U1"


@pytest.mark.asyncio
async def test_add_empty_document_is_invalid(container):
    with pytest.raises(InvalidRequest):
        await container.service.add_document("   ", {}, "U1")


@pytest.mark.asyncio
async def test_reindex_note_delegates_to_synchronizer(container):
    await container.start()
    try:
        container.note_store._notes["n1"] = make_note()
        assert await container.service.reindex_note("n1") is True
        assert len(container.index) == 1
    finally:
        await container.close()


def test_pgvector_backend_builds_engine():
    container = build_container(
        make_settings(vector_backend="pgvector"),
        embedder=ConceptEmbedder(),
        llm=AsyncMock(),
    )
    assert container.engine is not None
    assert type(container.index).__name__ == "PgVectorIndex"


@pytest.mark.asyncio
async def test_reindex_of_missing_note_keeps_other_users_vectors(container):
    await container.start()
    try:
        container.note_store.put(make_note(note_id="x", user_id="U1"))
        await container.synchronizer.drain()
        # Store loses the note without emitting an event.
        del container.note_store._notes["x"]

        assert await container.service.reindex_note("x", "U2") is False
        assert len(container.index) == 1

        assert await container.service.reindex_note("x", "U1") is False
        assert len(container.index) == 0
    finally:
        await container.close()


@pytest.mark.asyncio
async def test_reindex_of_another_users_note_is_refused(container):
    await container.start()
    try:
        container.note_store._notes["n1"] = make_note(note_id="n1", user_id="U1", content="v1")
        assert await container.service.reindex_note("n1", "U1") is True
        container.note_store._notes["n1"] = make_note(note_id="n1", user_id="U1", content="v2")

        assert await container.service.reindex_note("n1", "U2") is False

        (doc,) = container.index._docs.values()
        assert doc.content == "Trip plan\n\nv1"
    finally:
        await container.close()
