"""
Note Data Models

The note store owns notes; this service only reads them. These models mirror
the store's documents closely enough to normalize and index them.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


Timestamp = Union[datetime, str]

ChangeType = Literal["added", "modified", "removed"]


class Note(BaseModel):
    """
    A user note as delivered by the note store.

    Title and content may be empty here; the normalizer decides whether the
    note is worth indexing.
    """

    id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    title: str = ""
    content: str = ""
    created_at: Optional[Timestamp] = None
    updated_at: Optional[Timestamp] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class NoteChange(BaseModel):
    """
    One entry of the note store's change stream.

    `note` is required for added/modified events and optional for removals.
    """

    type: ChangeType
    note_id: str = Field(..., min_length=1)
    note: Optional[Note] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )
