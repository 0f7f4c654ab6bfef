"""
API Models

Request and response schemas for the HTTP surface. Field names are
snake_case in Python and camelCase on the wire (`relevantNotes`,
`hasRelevantContext`), matching what the mobile client sends and expects.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..index.models import NoteMetadata, RetrievedDocument


_CAMEL = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    extra="forbid",
)


# ---------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------

class QueryRequest(BaseModel):
    """
    Emptiness is checked by the service so the client gets the same
    `invalid_request` error whether the query is "" or only whitespace.
    """
    query: str

    model_config = _CAMEL


class Citation(BaseModel):
    content: str
    metadata: NoteMetadata

    model_config = _CAMEL

    @classmethod
    def from_document(cls, doc: RetrievedDocument) -> "Citation":
        return cls(content=doc.content, metadata=doc.metadata)


class QueryResponse(BaseModel):
    answer: str
    relevant_notes: List[Citation] = Field(default_factory=list)
    has_relevant_context: bool

    model_config = _CAMEL


# ---------------------------------------------------------------------
# Ingestion / maintenance
# ---------------------------------------------------------------------

class AddDocumentRequest(BaseModel):
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = _CAMEL


class OperationResult(BaseModel):
    """
    Standardized mutation operation result.
    """
    status: Literal["created", "ok", "queued"]
    id: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="forbid")
