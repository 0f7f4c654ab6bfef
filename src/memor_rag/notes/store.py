"""
Note Store Interfaces

The note store is the source of truth for notes. This module defines the two
capabilities the pipeline needs from it, a push-based change stream and a
lookup by id, plus two implementations:

- `InMemoryNoteStore`: a complete store held in a dict. `put`/`delete` emit
  change events. Used by tests and local development.
- `HttpNoteStore`: a remote store. Lookups go through `NoteStoreClient`;
  change events arrive through the `/notes/events` webhook and are fanned out
  with `publish`.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Protocol, runtime_checkable

from .client import NoteStoreClient
from .models import Note, NoteChange

logger = logging.getLogger("memor.notes")

ChangeCallback = Callable[[NoteChange], None]


@runtime_checkable
class NoteStore(Protocol):
    def subscribe(self, callback: ChangeCallback) -> Callable[[], None]:
        """Register a change callback. Returns an unsubscribe function."""
        ...

    async def get_by_id(self, note_id: str) -> Optional[Note]:
        ...


class ChangeFeed:
    """
    Fan-out of change events to subscribers, in subscription order.

    Callbacks must not block; the synchronizer's `submit` only enqueues.
    """

    def __init__(self) -> None:
        self._subscribers: List[ChangeCallback] = []

    def subscribe(self, callback: ChangeCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def publish(self, change: NoteChange) -> None:
        for callback in list(self._subscribers):
            try:
                callback(change)
            except Exception:
                logger.exception(
                    "Change subscriber failed for %s event on note %s",
                    change.type,
                    change.note_id,
                )


class InMemoryNoteStore(ChangeFeed):
    """
    Dict-backed note store.
    """

    def __init__(self) -> None:
        super().__init__()
        self._notes: Dict[str, Note] = {}

    def put(self, note: Note) -> NoteChange:
        change_type = "modified" if note.id in self._notes else "added"
        self._notes[note.id] = note
        change = NoteChange(type=change_type, note_id=note.id, note=note)
        self.publish(change)
        return change

    def delete(self, note_id: str) -> Optional[NoteChange]:
        note = self._notes.pop(note_id, None)
        if note is None:
            return None
        change = NoteChange(type="removed", note_id=note_id, note=note)
        self.publish(change)
        return change

    async def get_by_id(self, note_id: str) -> Optional[Note]:
        return self._notes.get(note_id)


class HttpNoteStore(ChangeFeed):
    """
    Remote note store.
    """

    def __init__(self, client: NoteStoreClient) -> None:
        super().__init__()
        self._client = client

    async def get_by_id(self, note_id: str) -> Optional[Note]:
        return await self._client.get_note(note_id)
