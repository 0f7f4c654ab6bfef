"""
Document Normalizer

Turns a note into the bounded text blob that gets embedded, plus the metadata
stored next to the vector. Pure; no I/O.

Layout of the text is `title`, blank line, content. The title goes first so
title terms weigh more in short-context similarity. Content is capped; the
title never is.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..core.errors import SkippedDocument
from ..index.models import NoteMetadata
from ..notes.models import Note

MAX_CONTENT_CHARS = 2000
ELLIPSIS = "..."


@dataclass(frozen=True)
class NormalizedDocument:
    text: str
    metadata: NoteMetadata


def truncate(text: str, limit: int) -> str:
    """Cut `text` to `limit` characters and mark the cut with an ellipsis."""
    if len(text) <= limit:
        return text
    return text[:limit] + ELLIPSIS


def normalize(note: Note, max_content_chars: int = MAX_CONTENT_CHARS) -> NormalizedDocument:
    """
    Raises
    ------
    SkippedDocument
        If the note has no id, or an empty title or content after trimming.
    """
    title = note.title.strip()
    content = note.content.strip()

    if not note.id or not title or not content:
        raise SkippedDocument(f"Note {note.id or '<no id>'} has no indexable title/content.")

    return NormalizedDocument(
        text=f"{title}\n\n{truncate(content, max_content_chars)}",
        metadata=NoteMetadata(
            note_id=note.id,
            user_id=note.user_id,
            title=title,
            created_at=note.created_at,
            updated_at=note.updated_at,
        ),
    )
