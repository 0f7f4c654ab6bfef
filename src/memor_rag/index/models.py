"""
Index Data Models

This module defines the canonical records stored in, and returned from, the
vector index.

Each IndexedDocument corresponds to ONE embedding vector. For notes there is
at most one IndexedDocument per `note_id` once synchronization settles.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# Metadata keys the index accepts in equality filters.
FILTERABLE_FIELDS = frozenset({"note_id", "user_id"})


class NoteMetadata(BaseModel):
    """
    Metadata attached to every vector.

    Serialized with camelCase keys (`noteId`, `userId`, ...) on the wire.
    Used both for filtering (`user_id`, `note_id`) and for display (`title`).
    """

    note_id: Optional[str] = None
    user_id: str = Field(..., min_length=1)
    title: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _isoformat(cls, v: Any) -> Any:
        if isinstance(v, datetime):
            return v.isoformat()
        return v


class IndexedDocument(BaseModel):
    """
    A single stored vector with its metadata and source text.
    """

    id: str = Field(..., min_length=1)
    vector: List[float] = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    metadata: NoteMetadata

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        arbitrary_types_allowed=False,
    )


class IndexMatch(BaseModel):
    """
    Result of a metadata-only `query_by_filter` lookup.
    """

    id: str
    metadata: Optional[NoteMetadata] = None

    model_config = ConfigDict(extra="forbid", frozen=True)


class RetrievedDocument(BaseModel):
    """
    One entry of a retrieval result: `{content, metadata}` plus the backend's
    similarity score.
    """

    content: str
    metadata: NoteMetadata
    score: Optional[float] = None

    model_config = ConfigDict(extra="forbid", frozen=True)

    def as_citation(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "metadata": self.metadata.model_dump(by_alias=True),
        }


def validate_filter(filter: Dict[str, Any]) -> Dict[str, Any]:
    """
    Reject empty filters and filters on unknown fields.

    An empty filter would silently widen a query to every user's notes.
    """
    if not filter:
        raise ValueError("Index filter must not be empty.")

    unknown = set(filter) - FILTERABLE_FIELDS
    if unknown:
        raise ValueError(f"Unsupported filter field(s): {', '.join(sorted(unknown))}")

    return filter
