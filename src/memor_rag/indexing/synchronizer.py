"""
Index Synchronizer

Keeps the vector index eventually consistent with the note store.

Change events are queued per note id. Each non-empty lane is drained by one
worker task, so events for the same note are applied strictly in the order
they were submitted, while different notes proceed concurrently. A lane's
worker exits once its queue is empty; the next event for that note starts a
new one.

Replacement of a note's vector is delete-then-insert and is not atomic. Under
the lane model two writers for the same note never overlap inside one
process; across processes a brief window with zero or two vectors is
tolerated and healed by the next event.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Callable, Dict, List, Optional

from ..core.errors import SkippedDocument
from ..embeddings.embedder import Embedder
from ..index.base import VectorIndex, with_timeout
from ..notes.models import Note, NoteChange
from ..notes.store import NoteStore
from .normalizer import MAX_CONTENT_CHARS, normalize

logger = logging.getLogger("memor.sync")

# Upper bound on vectors fetched per cleanup pass for a single note.
DUPLICATE_SCAN_LIMIT = 100


class IndexSynchronizer:
    """
    Applies note change events to a VectorIndex.
    """

    def __init__(
        self,
        index: VectorIndex,
        embedder: Embedder,
        max_content_chars: int = MAX_CONTENT_CHARS,
        index_timeout: float = 10.0,
    ) -> None:
        self._index = index
        self._embedder = embedder
        self._max_content_chars = max_content_chars
        self._index_timeout = index_timeout

        self._note_store: Optional[NoteStore] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

        self._lanes: Dict[str, asyncio.Queue[NoteChange]] = {}
        self._workers: Dict[str, asyncio.Task[None]] = {}
        self._running = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def attach(self, note_store: NoteStore) -> None:
        """
        Subscribe to a note store's change stream and use it for `reindex`.
        """
        if self._unsubscribe is not None:
            self._unsubscribe()
        self._note_store = note_store
        self._unsubscribe = note_store.subscribe(self.submit)

    def start(self) -> None:
        self._running = True
        logger.info("Index synchronizer started.")

    async def drain(self) -> None:
        """
        Wait until every queued event has been processed.
        """
        while self._workers:
            await asyncio.gather(*list(self._workers.values()), return_exceptions=True)

    async def stop(self) -> None:
        """
        Stop accepting events and cancel in-flight lanes.

        Pending events are dropped; the index catches up on the next change
        or via `reindex`.
        """
        self._running = False
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        dropped = self.pending
        workers = list(self._workers.values())
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)

        if dropped:
            logger.warning("Index synchronizer stopped with %d pending events dropped.", dropped)

        self._workers.clear()
        self._lanes.clear()
        logger.info("Index synchronizer stopped.")

    @property
    def pending(self) -> int:
        return sum(q.qsize() for q in self._lanes.values())

    # ------------------------------------------------------------------
    # Event intake
    # ------------------------------------------------------------------

    def submit(self, change: NoteChange) -> None:
        """
        Queue a change event. Must be called from the event loop thread.
        """
        if not self._running:
            raise RuntimeError("Index synchronizer is not running.")

        lane = self._lanes.get(change.note_id)
        if lane is None:
            lane = asyncio.Queue()
            self._lanes[change.note_id] = lane
            self._workers[change.note_id] = asyncio.create_task(
                self._run_lane(change.note_id, lane),
                name=f"sync-lane:{change.note_id}",
            )

        lane.put_nowait(change)
        logger.debug("Queued %s event for note %s", change.type, change.note_id)

    async def _run_lane(self, note_id: str, lane: asyncio.Queue[NoteChange]) -> None:
        try:
            while True:
                try:
                    change = lane.get_nowait()
                except asyncio.QueueEmpty:
                    break

                try:
                    await self.process(change)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception(
                        "Error handling note %s event for note %s",
                        change.type,
                        change.note_id,
                    )
                finally:
                    lane.task_done()
        finally:
            # No await between the empty check and removal, so a concurrent
            # submit either lands in this queue before it is seen empty or
            # creates a fresh lane afterwards.
            if self._lanes.get(note_id) is lane:
                del self._lanes[note_id]
                del self._workers[note_id]

    # ------------------------------------------------------------------
    # Event processing
    # ------------------------------------------------------------------

    async def process(self, change: NoteChange) -> None:
        """
        Apply one change event. Exceptions propagate to the caller.
        """
        if change.type == "removed":
            removed = await self._remove(change.note_id)
            logger.info("Deleted %d vector(s) for note: %s", removed, change.note_id)
            return

        note = change.note
        if note is None:
            if self._note_store is None:
                logger.warning(
                    "Dropping %s event for note %s: no payload and no note store attached.",
                    change.type,
                    change.note_id,
                )
                return
            note = await self._note_store.get_by_id(change.note_id)
            if note is None:
                logger.info("Note %s vanished before it could be indexed.", change.note_id)
                return

        await self._upsert(note)

    async def reindex(self, note_id: str, user_id: Optional[str] = None) -> bool:
        """
        Re-run the added/modified path for the note's current state.

        Returns True if a vector was written. A note that no longer exists has
        its vectors removed and returns False. Safe to call repeatedly.

        With `user_id` the call acts on that user's notes only: a note owned by
        someone else is left untouched and reported exactly like a missing
        one, and cleanup of a missing note deletes only the caller's vectors.
        """
        if self._note_store is None:
            raise RuntimeError("No note store attached; cannot reindex.")

        note = await self._note_store.get_by_id(note_id)
        if note is not None and user_id is not None and note.user_id != user_id:
            logger.warning("Refused reindex of note %s for non-owner %s.", note_id, user_id)
            return False

        if note is None:
            removed = await self._remove(note_id, user_id)
            logger.info("Reindex of missing note %s removed %d vector(s).", note_id, removed)
            return False

        return await self._upsert(note)

    async def _upsert(self, note: Note) -> bool:
        try:
            doc = normalize(note, self._max_content_chars)
        except SkippedDocument as exc:
            logger.warning("Skipping vectorization: %s", exc)
            return False

        vector = await self._embedder.embed(doc.text)

        existing = await self._find(note.id)
        if existing:
            await with_timeout(
                self._index.delete_by_ids(existing),
                self._index_timeout,
                "delete",
            )

        await with_timeout(
            self._index.upsert(uuid.uuid4().hex, vector, doc.metadata, doc.text),
            self._index_timeout,
            "upsert",
        )
        logger.info("Vectorized/updated note: %s", note.id)
        return True

    async def _remove(self, note_id: str, user_id: Optional[str] = None) -> int:
        """
        Delete every vector tagged with `note_id` (and `user_id`, if given),
        however many there are.
        """
        removed = 0
        while True:
            ids = await self._find(note_id, user_id)
            if not ids:
                return removed
            deleted = await with_timeout(
                self._index.delete_by_ids(ids),
                self._index_timeout,
                "delete",
            )
            removed += deleted
            if deleted == 0:
                logger.warning(
                    "Index deleted none of %d vector(s) for note %s; giving up.",
                    len(ids),
                    note_id,
                )
                return removed
            if len(ids) < DUPLICATE_SCAN_LIMIT:
                return removed

    async def _find(self, note_id: str, user_id: Optional[str] = None) -> List[str]:
        filter = {"note_id": note_id}
        if user_id is not None:
            filter["user_id"] = user_id

        matches = await with_timeout(
            self._index.query_by_filter(
                filter,
                top_k=DUPLICATE_SCAN_LIMIT,
                include_metadata=False,
            ),
            self._index_timeout,
            "query",
        )
        return [m.id for m in matches]
