"""
Vector Store

PostgreSQL + pgvector implementation of the VectorIndex contract.
"""

from __future__ import annotations

from typing import Any, Dict, List, Sequence

from sqlalchemy import select, delete
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..index.models import IndexMatch, NoteMetadata, RetrievedDocument, validate_filter
from .models import NoteEmbedding


class PgVectorIndex:
    """
    PostgreSQL-backed vector index using pgvector for similarity search.

    Every operation runs in its own session and transaction, so each single
    upsert, delete or query is atomic. Nothing spans operations.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """
        Parameters
        ----------
        session_factory : async_sessionmaker[AsyncSession]
            Factory producing sessions bound to the application engine.
        """
        self._session_factory = session_factory

    @staticmethod
    def _where(filter: Dict[str, Any]) -> list:
        validate_filter(filter)
        return [getattr(NoteEmbedding, key) == value for key, value in filter.items()]

    @staticmethod
    def _metadata(row: Any) -> NoteMetadata:
        return NoteMetadata(
            note_id=row.note_id,
            user_id=row.user_id,
            title=row.title,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

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
        values = {
            "id": id,
            "note_id": metadata.note_id,
            "user_id": metadata.user_id,
            "title": metadata.title,
            "content": content,
            "created_at": metadata.created_at,
            "updated_at": metadata.updated_at,
            "embedding": list(vector),
        }
        stmt = pg_insert(NoteEmbedding).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[NoteEmbedding.id],
            set_={k: v for k, v in values.items() if k != "id"},
        )

        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()

    async def query_by_filter(
        self,
        filter: Dict[str, Any],
        top_k: int,
        include_metadata: bool = True,
    ) -> List[IndexMatch]:
        stmt = (
            select(
                NoteEmbedding.id,
                NoteEmbedding.note_id,
                NoteEmbedding.user_id,
                NoteEmbedding.title,
                NoteEmbedding.created_at,
                NoteEmbedding.updated_at,
            )
            .where(*self._where(filter))
            .order_by(NoteEmbedding.indexed_at)
            .limit(top_k)
        )

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = result.all()

        return [
            IndexMatch(id=row.id, metadata=self._metadata(row) if include_metadata else None)
            for row in rows
        ]

    async def similarity_search(
        self,
        query_vector: Sequence[float],
        k: int,
        filter: Dict[str, Any],
    ) -> List[RetrievedDocument]:
        """
        Search for similar documents using cosine similarity.

        Uses pgvector's `<=>` (cosine distance) operator; score is
        `1 - distance`.
        """
        cosine_distance = NoteEmbedding.embedding.cosine_distance(list(query_vector))

        stmt = (
            select(
                NoteEmbedding.content,
                NoteEmbedding.note_id,
                NoteEmbedding.user_id,
                NoteEmbedding.title,
                NoteEmbedding.created_at,
                NoteEmbedding.updated_at,
                (1 - cosine_distance).label("score"),
            )
            .where(*self._where(filter))
            .order_by(cosine_distance)
            .limit(k)
        )

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = result.all()

        return [
            RetrievedDocument(
                content=row.content,
                metadata=self._metadata(row),
                score=float(row.score),
            )
            for row in rows
        ]

    async def delete_by_ids(self, ids: Sequence[str]) -> int:
        if not ids:
            return 0

        stmt = delete(NoteEmbedding).where(NoteEmbedding.id.in_(list(ids)))

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()

        return result.rowcount
