from fastapi import APIRouter, Depends

from .dependencies import get_container
from ..container import ServiceContainer

router = APIRouter(tags=["health"])


@router.get("/health")
def health(container: ServiceContainer = Depends(get_container)):
    return {
        "status": "ok",
        "vector_backend": container.settings.vector_backend,
        "pending_events": container.synchronizer.pending,
    }
