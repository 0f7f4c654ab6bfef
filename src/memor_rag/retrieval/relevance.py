"""
Relevance Gate

Decides whether retrieved notes are topically related to the question before
an answer is grounded in them.

Decision order
--------------
1. No documents            -> not relevant
2. `many_results` or more  -> relevant (no embedding round trip)
3. Embed query + documents, compute cosine similarity per document:
   - any score >= primary threshold            -> relevant
   - else max score >= secondary threshold     -> relevant
   - else                                      -> not relevant

If embedding fails for any reason the gate fails open and reports relevant.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence

import numpy as np

from ..embeddings.embedder import Embedder
from ..index.models import RetrievedDocument

logger = logging.getLogger("memor.relevance")

PRIMARY_THRESHOLD = 0.5
SECONDARY_THRESHOLD = 0.4
MANY_RESULTS = 5


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    `dot(a, b) / (|a| * |b|)`; 0.0 when either vector has zero magnitude.
    """
    va = np.asarray(a, dtype="float64")
    vb = np.asarray(b, dtype="float64")

    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    return float(np.dot(va, vb) / (norm_a * norm_b))


class RelevanceGate:
    def __init__(
        self,
        embedder: Embedder,
        primary_threshold: float = PRIMARY_THRESHOLD,
        secondary_threshold: float = SECONDARY_THRESHOLD,
        many_results: int = MANY_RESULTS,
        timeout: Optional[float] = None,
    ) -> None:
        if secondary_threshold > primary_threshold:
            raise ValueError("secondary_threshold must not exceed primary_threshold")

        self._embedder = embedder
        self.primary_threshold = primary_threshold
        self.secondary_threshold = secondary_threshold
        self.many_results = many_results
        self._timeout = timeout

    async def is_relevant(self, query: str, docs: Sequence[RetrievedDocument]) -> bool:
        if not docs:
            return False

        if len(docs) >= self.many_results:
            return True

        try:
            vectors = await asyncio.wait_for(
                self._embedder.embed_batch([query, *(d.content for d in docs)]),
                timeout=self._timeout,
            )
            if len(vectors) != len(docs) + 1:
                raise ValueError(
                    f"expected {len(docs) + 1} embeddings, got {len(vectors)}"
                )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Relevance check failed, assuming relevant: %s", exc)
            return True

        query_vector, doc_vectors = vectors[0], vectors[1:]

        best = float("-inf")
        for doc, vector in zip(docs, doc_vectors):
            score = cosine_similarity(query_vector, vector)
            logger.debug("Similarity %.3f for note %s", score, doc.metadata.note_id)
            if score >= self.primary_threshold:
                return True
            best = max(best, score)

        return best >= self.secondary_threshold
