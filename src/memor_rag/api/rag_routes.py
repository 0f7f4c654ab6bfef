"""
RAG Routes

Question answering over the caller's notes, and manual document ingestion.

Security Model
--------------
- Every route requires a user JWT.
- The user id used for retrieval and ownership comes from the token's `sub`
  claim only; request bodies cannot widen or change it.
"""

from fastapi import APIRouter, Depends, Request, status
from typing import Annotated

from .cancellation import cancel_on_disconnect
from .dependencies import get_service
from .models import (
    AddDocumentRequest,
    Citation,
    OperationResult,
    QueryRequest,
    QueryResponse,
)
from ..auth.models import UserContext
from ..auth.security import require_scopes
from ..service import NoteQAService

router = APIRouter(prefix="/rag", tags=["rag"])


@router.post(
    "/query",
    response_model=QueryResponse,
    summary="Answer a question from the caller's notes",
)
@router.post(
    "/query-notes",
    response_model=QueryResponse,
    include_in_schema=False,
)
async def query_notes(
    req: QueryRequest,
    request: Request,
    user: Annotated[UserContext, Depends(require_scopes("rag_query"))],
    service: Annotated[NoteQAService, Depends(get_service)],
) -> QueryResponse:
    """
    Retrieve the caller's closest notes, check they are on topic, and answer
    from them.

    When nothing relevant is found the answer is a fixed disclaimer,
    `relevantNotes` is empty and `hasRelevantContext` is false.
    """
    result = await cancel_on_disconnect(
        request,
        service.query_notes(req.query, user.user_id),
    )

    return QueryResponse(
        answer=result.answer,
        relevant_notes=[Citation.from_document(d) for d in result.relevant_notes],
        has_relevant_context=result.has_relevant_context,
    )


@router.post(
    "/documents",
    response_model=OperationResult,
    status_code=status.HTTP_201_CREATED,
    summary="Add a document to the caller's index",
)
async def add_document(
    req: AddDocumentRequest,
    user: Annotated[UserContext, Depends(require_scopes("rag_write"))],
    service: Annotated[NoteQAService, Depends(get_service)],
) -> OperationResult:
    doc_id = await service.add_document(req.content, req.metadata, user.user_id)
    return OperationResult(status="created", id=doc_id)
