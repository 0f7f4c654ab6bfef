"""
Note QA Service

The exposed interface of the RAG subsystem:

- `query_notes`   retrieve, gate, then synthesize or disclaim
- `add_document`  manual ingestion that bypasses the note listener
- `reindex_note`  force a note back in sync with the note store

All collaborators are passed in explicitly; see `container.py` for wiring.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .core.errors import AuthorizationMissing, InvalidRequest
from .embeddings.embedder import Embedder
from .index.base import VectorIndex, with_timeout
from .index.models import NoteMetadata, RetrievedDocument
from .indexing.normalizer import MAX_CONTENT_CHARS, truncate
from .indexing.synchronizer import IndexSynchronizer
from .prompts import NO_CONTEXT_ANSWER
from .retrieval.relevance import RelevanceGate
from .retrieval.retriever import Retriever
from .retrieval.synthesizer import AnswerSynthesizer

logger = logging.getLogger("memor.service")

QUERY_TOP_K = 3

RESERVED_METADATA_KEYS = frozenset({"user_id", "userId", "note_id", "noteId"})


@dataclass
class QueryAnswer:
    answer: str
    relevant_notes: List[RetrievedDocument] = field(default_factory=list)
    has_relevant_context: bool = False


class NoteQAService:
    def __init__(
        self,
        retriever: Retriever,
        gate: RelevanceGate,
        synthesizer: AnswerSynthesizer,
        synchronizer: IndexSynchronizer,
        index: VectorIndex,
        embedder: Embedder,
        query_top_k: int = QUERY_TOP_K,
        max_content_chars: int = MAX_CONTENT_CHARS,
        index_timeout: float = 10.0,
    ) -> None:
        self._retriever = retriever
        self._gate = gate
        self._synthesizer = synthesizer
        self._synchronizer = synchronizer
        self._index = index
        self._embedder = embedder
        self._query_top_k = query_top_k
        self._max_content_chars = max_content_chars
        self._index_timeout = index_timeout

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    async def query_notes(self, query: str, user_id: Optional[str]) -> QueryAnswer:
        """
        Answer a question from the caller's own notes.

        Returns a disclaimer with no citations when nothing relevant is found;
        the generation model is not called in that case.

        Raises
        ------
        AuthorizationMissing
            If `user_id` is missing. Checked before any other work.
        InvalidRequest
            If `query` is empty after trimming.
        EmbeddingError, IndexOperationError, SynthesisError
            Propagated from the pipeline stages.
        """
        if not user_id or not user_id.strip():
            raise AuthorizationMissing("Authentication is required to query notes.")

        query = (query or "").strip()
        if not query:
            raise InvalidRequest("Query must not be empty.")

        docs = await self._retriever.retrieve(query, user_id, k=self._query_top_k)
        logger.info("Retrieved %d note(s) for user %s", len(docs), user_id)

        if not await self._gate.is_relevant(query, docs):
            return QueryAnswer(
                answer=NO_CONTEXT_ANSWER.format(query=query),
                relevant_notes=[],
                has_relevant_context=False,
            )

        result = await self._synthesizer.synthesize(query, docs)
        return QueryAnswer(
            answer=result.answer,
            relevant_notes=result.citations,
            has_relevant_context=True,
        )

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def add_document(
        self,
        content: str,
        metadata: Optional[Dict[str, Any]],
        user_id: str,
    ) -> str:
        """
        Embed `content` and store it as a new vector owned by `user_id`.

        Unlike the synchronizer this never replaces existing vectors. Returns
        the id of the stored vector.
        """
        if not user_id or not user_id.strip():
            raise AuthorizationMissing("Authentication is required to add documents.")

        content = (content or "").strip()
        if not content:
            raise InvalidRequest("Document content must not be empty.")

        # Owner always comes from the caller, whatever the metadata claims.
        # Note ids belong to the synchronizer; a manual document never carries one.
        fields = {
            k: v for k, v in (metadata or {}).items() if k not in RESERVED_METADATA_KEYS
        }
        fields["user_id"] = user_id

        try:
            meta = NoteMetadata.model_validate(fields)
        except ValidationError as exc:
            raise InvalidRequest(f"Invalid document metadata: {exc.error_count()} error(s).") from exc

        text = truncate(content, self._max_content_chars)
        vector = await self._embedder.embed(text)

        doc_id = uuid.uuid4().hex
        await with_timeout(
            self._index.upsert(doc_id, vector, meta, text),
            self._index_timeout,
            "upsert",
        )
        logger.info("Added document %s for user %s", doc_id, user_id)
        return doc_id

    async def reindex_note(self, note_id: str, user_id: Optional[str] = None) -> bool:
        """
        Bring one note back in sync. Route callers always pass their own
        `user_id`; only operator tooling (backfill) runs unscoped.
        """
        if not note_id or not note_id.strip():
            raise InvalidRequest("Note id must not be empty.")
        return await self._synchronizer.reindex(note_id, user_id)
