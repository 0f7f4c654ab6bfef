"""
Error Taxonomy and Global Error Handling

This module defines the exceptions raised across the RAG pipeline and the
application-wide handlers that turn them into HTTP responses.

Propagation Policy
------------------
- Infrastructure flakiness is absorbed close to its source (index sync,
  relevance gating) and never reaches these handlers.
- Semantic failures (missing identity, bad input, synthesis failure) are
  surfaced immediately with a deterministic error payload.
- Internal exception details are never leaked to clients.
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger("memor.errors")


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class MemorError(RuntimeError):
    """Base class for all pipeline errors."""

    code: str = "internal_error"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR


class SkippedDocument(MemorError):
    """
    Raised by the normalizer when a note has too little content to index.

    This is a signal, not a failure: callers log it and move on.
    """

    code = "skipped_document"
    status_code = status.HTTP_200_OK


class IndexOperationError(MemorError):
    """Raised when an upsert, delete or query against the vector index fails."""

    code = "index_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class EmbeddingError(MemorError):
    """Raised when embedding generation fails."""

    code = "embedding_failed"
    status_code = status.HTTP_502_BAD_GATEWAY


class SynthesisError(MemorError):
    """Raised when the generation model fails to produce an answer."""

    code = "processing_error"
    status_code = status.HTTP_502_BAD_GATEWAY


class AuthorizationMissing(MemorError):
    """Raised when a request has no resolvable user identity."""

    code = "authentication_required"
    status_code = status.HTTP_401_UNAUTHORIZED


class InvalidRequest(MemorError):
    """Raised for semantically invalid input (e.g. an empty query)."""

    code = "invalid_request"
    status_code = status.HTTP_400_BAD_REQUEST


class NoteStoreError(MemorError):
    """Raised when the note store cannot be reached or returns garbage."""

    code = "note_store_unavailable"
    status_code = status.HTTP_502_BAD_GATEWAY


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def memor_error_handler(
    request: Request,
    exc: MemorError,
) -> JSONResponse:
    """
    Map a known pipeline error to its HTTP status.

    The message of the exception is considered safe for clients; raise sites
    must not put internal details (URLs, keys, stack data) into it.
    """
    logger.warning(
        "%s during %s %s: %s",
        type(exc).__name__,
        request.method,
        request.url.path,
        exc,
    )

    payload: Dict[str, Any] = {
        "error": exc.code,
        "detail": str(exc) or exc.code,
    }

    return JSONResponse(
        status_code=exc.status_code,
        content=payload,
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Logs the full stack trace and returns a generic 500 with no internal
    details.
    """

    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
