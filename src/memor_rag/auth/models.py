"""
Authentication Models

Strongly-typed identity models produced after JWT verification.
"""

from typing import List
from pydantic import BaseModel, Field, ConfigDict


class UserContext(BaseModel):
    """
    Authenticated caller identity derived from a verified JWT.

    `user_id` is the only value retrieval is ever scoped by. It comes from the
    token's `sub` claim and never from a request body.
    """

    user_id: str = Field(
        ...,
        min_length=1,
        description="Owner identifier of the notes this caller may read.",
    )

    scopes: List[str] = Field(
        default_factory=list,
        description="List of scopes granted to the caller.",
    )

    client_id: str = Field(
        ...,
        min_length=1,
        description="Client identifier that issued the JWT (e.g., memor-app).",
    )

    model_config = ConfigDict(
        frozen=True,
        arbitrary_types_allowed=False,
        extra="forbid",             # Prevents claim injection via unexpected fields
    )


class ServiceContext(BaseModel):
    """
    Identity of a trusted backend service (e.g. the note store webhook).
    """

    service: str = Field(..., min_length=1)
    scopes: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="forbid")
