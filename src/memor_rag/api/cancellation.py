"""
Request cancellation.

A query holds an embedding call, possibly a second one for the relevance
gate, and a generation call. If the client goes away there is no point in
finishing any of them.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, TypeVar

from fastapi import HTTPException, Request

logger = logging.getLogger("memor.app")

T = TypeVar("T")

# nginx's "client closed request"; never actually delivered to the client.
CLIENT_CLOSED_REQUEST = 499

POLL_INTERVAL_SECONDS = 0.25


async def cancel_on_disconnect(
    request: Request,
    work: Awaitable[T],
    poll_interval: float = POLL_INTERVAL_SECONDS,
) -> T:
    """
    Await `work`, cancelling it if the client disconnects first.

    Raises
    ------
    HTTPException(499)
        When the work was cancelled because of a disconnect.
    """
    task = asyncio.ensure_future(work)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=poll_interval)
            if done:
                return task.result()
            if await request.is_disconnected():
                task.cancel()
                logger.info("Client disconnected; cancelled %s %s", request.method, request.url.path)
                raise HTTPException(
                    status_code=CLIENT_CLOSED_REQUEST,
                    detail="Client closed request.",
                )
    finally:
        if not task.done():
            task.cancel()
