"""
Note Routes

Synchronization endpoints:

- `POST /notes/events`             change-stream webhook for the note store
- `POST /notes/{note_id}/reindex`  force one note back in sync

Events are only queued here; the synchronizer applies them in the background
and logs (never returns) failures.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status

from .dependencies import get_note_feed, get_service
from .models import OperationResult
from ..auth.models import ServiceContext, UserContext
from ..auth.security import require_scopes, require_service_scopes
from ..notes.models import NoteChange
from ..notes.store import ChangeFeed
from ..service import NoteQAService

logger = logging.getLogger("memor.app")

router = APIRouter(prefix="/notes", tags=["notes"])


@router.post(
    "/events",
    response_model=OperationResult,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Receive a note change event",
)
async def note_event(
    change: NoteChange,
    service_ctx: Annotated[ServiceContext, Depends(require_service_scopes("notes_events"))],
    feed: Annotated[ChangeFeed, Depends(get_note_feed)],
) -> OperationResult:
    feed.publish(change)
    logger.debug("Accepted %s event for note %s from %s", change.type, change.note_id, service_ctx.service)
    return OperationResult(status="queued", details={"noteId": change.note_id})


@router.post(
    "/{note_id}/reindex",
    response_model=OperationResult,
    summary="Re-index a single note",
)
async def reindex_note(
    note_id: str,
    user: Annotated[UserContext, Depends(require_scopes("rag_write"))],
    service: Annotated[NoteQAService, Depends(get_service)],
) -> OperationResult:
    """
    Re-read the note from the note store and replace its vector.

    `indexed` is false when the note no longer exists (its vectors are
    removed) or has nothing to index.
    """
    indexed = await service.reindex_note(note_id, user.user_id)
    return OperationResult(
        status="ok",
        details={"noteId": note_id, "indexed": indexed},
    )
