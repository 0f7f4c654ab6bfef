"""
Route dependencies.

Everything is read from the `ServiceContainer` the lifespan put on
`app.state`; nothing here constructs components.
"""

from fastapi import Depends, Request

from ..config import Settings
from ..container import ServiceContainer
from ..indexing.synchronizer import IndexSynchronizer
from ..notes.store import ChangeFeed
from ..service import NoteQAService


def get_container(request: Request) -> ServiceContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise RuntimeError("Service container not initialised.")
    return container


def get_app_settings(container: ServiceContainer = Depends(get_container)) -> Settings:
    return container.settings


def get_service(container: ServiceContainer = Depends(get_container)) -> NoteQAService:
    return container.service


def get_note_feed(container: ServiceContainer = Depends(get_container)) -> ChangeFeed:
    return container.note_store


def get_synchronizer(container: ServiceContainer = Depends(get_container)) -> IndexSynchronizer:
    return container.synchronizer
