"""
Vector Index Contract

Every index backend (pgvector, in-memory) implements `VectorIndex`. The
pipeline only talks to this protocol, so backends can be swapped in tests.

Each single operation is atomic from the pipeline's point of view. Multi-step
sequences (delete-then-insert) are not.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Dict, List, Protocol, Sequence, TypeVar, runtime_checkable

from ..core.errors import IndexOperationError
from .models import IndexMatch, NoteMetadata, RetrievedDocument

T = TypeVar("T")


@runtime_checkable
class VectorIndex(Protocol):
    """
    Contract for vector storage and metadata-filtered search.

    Implementations:
    - PgVectorIndex (production, PostgreSQL + pgvector)
    - InMemoryVectorIndex (tests and local development)
    """

    async def upsert(
        self,
        id: str,
        vector: Sequence[float],
        metadata: NoteMetadata,
        content: str,
    ) -> None:
        """Insert or replace the vector stored under `id`."""
        ...

    async def query_by_filter(
        self,
        filter: Dict[str, Any],
        top_k: int,
        include_metadata: bool = True,
    ) -> List[IndexMatch]:
        """Return up to `top_k` stored vectors whose metadata equals `filter`."""
        ...

    async def similarity_search(
        self,
        query_vector: Sequence[float],
        k: int,
        filter: Dict[str, Any],
    ) -> List[RetrievedDocument]:
        """Return the `k` nearest vectors matching `filter`, closest first."""
        ...

    async def delete_by_ids(self, ids: Sequence[str]) -> int:
        """Delete vectors by id. Returns the number removed."""
        ...


async def with_timeout(operation: Awaitable[T], timeout: float, what: str) -> T:
    """
    Await an index operation with a bounded timeout.

    Timeouts and backend exceptions are both reported as IndexOperationError
    so callers have a single failure type to handle.
    """
    try:
        return await asyncio.wait_for(operation, timeout=timeout)
    except IndexOperationError:
        raise
    except asyncio.TimeoutError as exc:
        raise IndexOperationError(f"Index {what} timed out after {timeout:.1f}s") from exc
    except ValueError:
        raise
    except Exception as exc:
        raise IndexOperationError(f"Index {what} failed: {type(exc).__name__}") from exc
