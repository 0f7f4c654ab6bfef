"""
Retriever

User-scoped semantic search over the note index.

Every index query issued here carries `{"user_id": user_id}` as its filter.
The user id is taken from the authenticated caller by the layers above and
there is no code path that searches without it.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from ..core.errors import AuthorizationMissing, IndexOperationError
from ..embeddings.embedder import Embedder
from ..index.base import VectorIndex, with_timeout
from ..index.models import RetrievedDocument

logger = logging.getLogger("memor.retriever")

MAX_QUERY_CHARS = 300
DEFAULT_K = 4


def prepare_query(query: str, max_chars: int = MAX_QUERY_CHARS) -> str:
    """Trim and cap a query before it is embedded."""
    return query.strip()[:max_chars]


class Retriever:
    def __init__(
        self,
        index: VectorIndex,
        embedder: Embedder,
        max_query_chars: int = MAX_QUERY_CHARS,
        default_k: int = DEFAULT_K,
        index_timeout: float = 10.0,
    ) -> None:
        self._index = index
        self._embedder = embedder
        self._max_query_chars = max_query_chars
        self._default_k = default_k
        self._index_timeout = index_timeout

    async def retrieve(
        self,
        query: str,
        user_id: str,
        k: Optional[int] = None,
    ) -> List[RetrievedDocument]:
        """
        Return up to `k` of the user's notes closest to `query`, best first.

        Raises
        ------
        AuthorizationMissing
            If `user_id` is empty.
        EmbeddingError
            If the query cannot be embedded.
        IndexOperationError
            If the index still fails at k == 1.
        """
        if not user_id or not user_id.strip():
            raise AuthorizationMissing("Retrieval requires a user id.")

        k = self._default_k if k is None else k
        if k < 1:
            raise ValueError(f"k must be >= 1; got {k}")

        text = prepare_query(query, self._max_query_chars)
        if not text:
            return []

        vector = await self._embedder.embed(text)
        return await self._search(vector, user_id, k)

    async def _search(
        self,
        vector: Sequence[float],
        user_id: str,
        k: int,
    ) -> List[RetrievedDocument]:
        # Shrink k by one per failed attempt, down to 1.
        try:
            return await with_timeout(
                self._index.similarity_search(vector, k, {"user_id": user_id}),
                self._index_timeout,
                "query",
            )
        except IndexOperationError as exc:
            if k <= 1:
                raise
            logger.warning("Index query failed at k=%d (%s); retrying with k=%d", k, exc, k - 1)
            return await self._search(vector, user_id, k - 1)
