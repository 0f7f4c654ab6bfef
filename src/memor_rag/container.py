"""
Service Container

Builds every pipeline component once from `Settings` and hands out explicit
references. The FastAPI lifespan owns one container per application; scripts
and tests build their own.

Startup order
-------------
1. Database schema (pgvector backend only)
2. Synchronizer started
3. Synchronizer attached to the note store change stream

Shutdown reverses it and disposes of the engine.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy.ext.asyncio import AsyncEngine

from .config import Settings
from .db import PgVectorIndex, create_engine, create_session_factory, init_schema
from .embeddings.embedder import Embedder
from .index.base import VectorIndex
from .index.memory import InMemoryVectorIndex
from .indexing.synchronizer import IndexSynchronizer
from .llm.client import LLMClient
from .notes.client import NoteStoreClient
from .notes.store import HttpNoteStore, InMemoryNoteStore
from .retrieval.relevance import RelevanceGate
from .retrieval.retriever import Retriever
from .retrieval.synthesizer import AnswerSynthesizer
from .service import NoteQAService

logger = logging.getLogger("memor.app")

NoteStoreImpl = Union[InMemoryNoteStore, HttpNoteStore]


@dataclass
class ServiceContainer:
    settings: Settings
    embedder: Embedder
    index: VectorIndex
    llm: LLMClient
    note_store: NoteStoreImpl
    synchronizer: IndexSynchronizer
    retriever: Retriever
    gate: RelevanceGate
    synthesizer: AnswerSynthesizer
    service: NoteQAService
    engine: Optional[AsyncEngine] = None

    async def start(self) -> None:
        if self.engine is not None:
            await init_schema(self.engine)
            logger.info("Vector schema ready.")

        self.synchronizer.start()
        self.synchronizer.attach(self.note_store)

    async def close(self) -> None:
        await self.synchronizer.stop()

        if self.engine is not None:
            await self.engine.dispose()
            logger.info("Database engine disposed.")


def build_container(
    settings: Settings,
    *,
    index: Optional[VectorIndex] = None,
    embedder: Optional[Embedder] = None,
    llm: Optional[LLMClient] = None,
    note_store: Optional[NoteStoreImpl] = None,
) -> ServiceContainer:
    """
    Wire the pipeline from settings.

    Keyword overrides replace the component that would otherwise be built
    from settings; tests use them to inject fakes.
    """
    api_key = settings.openai_api_key.get_secret_value()

    if embedder is None:
        embedder = Embedder(
            api_key=api_key,
            model=settings.embedding_model,
            base_url=settings.openai_base_url,
            timeout=settings.embedding_timeout_seconds,
        )

    if llm is None:
        llm = LLMClient(
            api_key=api_key,
            model=settings.chat_model,
            base_url=settings.openai_base_url,
            temperature=settings.chat_temperature,
            max_tokens=settings.chat_max_tokens,
            timeout=settings.generation_timeout_seconds,
        )

    engine: Optional[AsyncEngine] = None
    if index is None:
        if settings.vector_backend == "pgvector":
            engine = create_engine(settings.database_url)
            index = PgVectorIndex(create_session_factory(engine))
        else:
            index = InMemoryVectorIndex()
        logger.info("Using %s vector index.", settings.vector_backend)

    if note_store is None:
        if settings.note_store_url:
            note_store = HttpNoteStore(
                NoteStoreClient(
                    settings.note_store_url,
                    settings,
                    timeout=settings.note_store_timeout_seconds,
                )
            )
        else:
            note_store = InMemoryNoteStore()

    synchronizer = IndexSynchronizer(
        index,
        embedder,
        max_content_chars=settings.max_content_chars,
        index_timeout=settings.index_timeout_seconds,
    )
    retriever = Retriever(
        index,
        embedder,
        max_query_chars=settings.max_query_chars,
        default_k=settings.retrieval_top_k,
        index_timeout=settings.index_timeout_seconds,
    )
    gate = RelevanceGate(
        embedder,
        primary_threshold=settings.relevance_primary_threshold,
        secondary_threshold=settings.relevance_secondary_threshold,
        many_results=settings.relevance_many_results,
        timeout=settings.embedding_timeout_seconds,
    )
    synthesizer = AnswerSynthesizer(llm, excerpt_chars=settings.context_excerpt_chars)

    service = NoteQAService(
        retriever=retriever,
        gate=gate,
        synthesizer=synthesizer,
        synchronizer=synchronizer,
        index=index,
        embedder=embedder,
        query_top_k=settings.query_top_k,
        max_content_chars=settings.max_content_chars,
        index_timeout=settings.index_timeout_seconds,
    )

    return ServiceContainer(
        settings=settings,
        embedder=embedder,
        index=index,
        llm=llm,
        note_store=note_store,
        synchronizer=synchronizer,
        retriever=retriever,
        gate=gate,
        synthesizer=synthesizer,
        service=service,
        engine=engine,
    )
