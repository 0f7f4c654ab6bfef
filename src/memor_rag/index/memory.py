"""
In-Memory Vector Index

Brute-force cosine search over numpy arrays. Implements the same interface as
PgVectorIndex but needs no database, which makes it the backend for tests and
local development (`VECTOR_BACKEND=memory`).
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Sequence

import numpy as np

from .models import (
    IndexedDocument,
    IndexMatch,
    NoteMetadata,
    RetrievedDocument,
    validate_filter,
)


class InMemoryVectorIndex:
    """
    Dict-backed index keyed by vector id.

    Insertion order is preserved so that ties in similarity resolve to the
    oldest vector first.
    """

    def __init__(self) -> None:
        self._docs: Dict[str, IndexedDocument] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._docs)

    @staticmethod
    def _matches(metadata: NoteMetadata, filter: Dict[str, Any]) -> bool:
        return all(getattr(metadata, key) == value for key, value in filter.items())

    # ------------------------------------------------------------------
    # VectorIndex API
    # ------------------------------------------------------------------

    async def upsert(
        self,
        id: str,
        vector: Sequence[float],
        metadata: NoteMetadata,
        content: str,
    ) -> None:
        doc = IndexedDocument(
            id=id,
            vector=[float(x) for x in vector],
            content=content,
            metadata=metadata,
        )
        async with self._lock:
            self._docs[id] = doc

    async def query_by_filter(
        self,
        filter: Dict[str, Any],
        top_k: int,
        include_metadata: bool = True,
    ) -> List[IndexMatch]:
        validate_filter(filter)
        async with self._lock:
            hits = [
                doc for doc in self._docs.values()
                if self._matches(doc.metadata, filter)
            ]

        return [
            IndexMatch(id=doc.id, metadata=doc.metadata if include_metadata else None)
            for doc in hits[:top_k]
        ]

    async def similarity_search(
        self,
        query_vector: Sequence[float],
        k: int,
        filter: Dict[str, Any],
    ) -> List[RetrievedDocument]:
        validate_filter(filter)
        if k <= 0:
            return []

        async with self._lock:
            candidates = [
                doc for doc in self._docs.values()
                if self._matches(doc.metadata, filter)
            ]

        if not candidates:
            return []

        q = np.asarray(query_vector, dtype="float32")
        matrix = np.asarray([doc.vector for doc in candidates], dtype="float32")

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
        dots = matrix @ q
        scores = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)

        # Stable sort keeps insertion order among equal scores.
        order = np.argsort(-scores, kind="stable")[:k]

        return [
            RetrievedDocument(
                content=candidates[i].content,
                metadata=candidates[i].metadata,
                score=float(scores[i]),
            )
            for i in order
        ]

    async def delete_by_ids(self, ids: Sequence[str]) -> int:
        removed = 0
        async with self._lock:
            for doc_id in ids:
                if self._docs.pop(doc_id, None) is not None:
                    removed += 1
        return removed
