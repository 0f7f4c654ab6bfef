import httpx
from typing import Any, Dict, Optional

from pydantic import ValidationError

from ..auth.jwt_utils import create_service_jwt
from ..config import Settings
from ..core.errors import NoteStoreError
from .models import Note


class NoteStoreClient:
    def __init__(
        self,
        base_url: str,
        settings: Settings,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._settings = settings
        self.timeout = timeout
        self._transport = transport

    async def _request(self, path: str, scopes: list[str] | None = None) -> httpx.Response:
        """
        Make an authenticated GET request to the note store.

        Args:
            path: Path below the base URL
            scopes: JWT scopes for this request (defaults to ["notes_read"])
        """
        if scopes is None:
            scopes = ["notes_read"]

        # Short-lived service token per request
        token = create_service_jwt(self._settings, scopes)
        headers = {
            "Authorization": f"Bearer {token}"
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                return await client.get(f"{self.base_url}{path}", headers=headers)
        except httpx.HTTPError as exc:
            raise NoteStoreError(
                f"Note store request failed: {type(exc).__name__}"
            ) from exc

    async def get_note(self, note_id: str) -> Note | None:
        resp = await self._request(f"/notes/{note_id}")
        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            raise NoteStoreError(f"Note store returned HTTP {resp.status_code}")

        data: Dict[str, Any] = resp.json()
        # Firestore-style payloads keep the id outside the document body.
        data.setdefault("id", note_id)
        try:
            return Note.model_validate(data)
        except ValidationError as exc:
            raise NoteStoreError("Note store returned a malformed note.") from exc
