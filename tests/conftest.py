import os
import time
from typing import List, Optional, Sequence

import jwt
import pytest
from pydantic import SecretStr

# Settings are read from the environment; give tests deterministic secrets.
os.environ.setdefault("OPENAI_API_KEY", "sk-test")
os.environ.setdefault("JWT_CLIENT_SECRET", "test-secret-app-to-rag-must-be-long-enough")
os.environ.setdefault("JWT_SERVICE_SECRET", "test-secret-notes-to-rag-must-be-long-enough")

from memor_rag.config import Settings
from memor_rag.index.memory import InMemoryVectorIndex
from memor_rag.notes.models import Note


TEST_CLIENT_SECRET = "test-secret-app-to-rag-must-be-long-enough"
TEST_SERVICE_SECRET = "test-secret-notes-to-rag-must-be-long-enough"


# Each concept is one axis of the fake embedding space. The trailing bias
# axis keeps every vector non-zero.
CONCEPTS = [
    ("trip", "travel", "vacation"),
    ("flight", "fly", "airport", "plane"),
    ("hotel", "booked", "booking"),
    ("grocery", "groceries", "milk", "eggs"),
    ("meeting", "standup", "agenda"),
    ("recipe", "cook", "pasta"),
]


class ConceptEmbedder:
    """
    Deterministic stand-in for the embedding provider.

    Texts that share concept words end up close; unrelated texts are nearly
    orthogonal.
    """

    def __init__(self) -> None:
        self.calls: List[List[str]] = []

    @staticmethod
    def vector_for(text: str) -> List[float]:
        words = {w.strip(".,:;!?\"'()").lower() for w in text.split()}
        vec = [float(any(term in words for term in group)) for group in CONCEPTS]
        vec.append(0.1)
        return vec

    async def embed(self, text: str) -> List[float]:
        return (await self.embed_batch([text]))[0]

    async def embed_batch(self, texts: Sequence[str], batch_size: int = 20) -> List[List[float]]:
        self.calls.append(list(texts))
        return [self.vector_for(t) for t in texts]


def make_settings(**overrides) -> Settings:
    values = dict(
        openai_api_key=SecretStr("sk-test"),
        jwt_client_secret=SecretStr(TEST_CLIENT_SECRET),
        jwt_service_secret=SecretStr(TEST_SERVICE_SECRET),
        vector_backend="memory",
        note_store_url=None,
    )
    values.update(overrides)
    return Settings(**values)


def make_note(
    note_id: str = "n1",
    user_id: str = "U1",
    title: str = "Trip plan",
    content: str = "Flight at 9am, hotel booked",
    updated_at: Optional[str] = None,
) -> Note:
    return Note(
        id=note_id,
        user_id=user_id,
        title=title,
        content=content,
        created_at="2024-05-01T10:00:00+00:00",
        updated_at=updated_at or "2024-05-01T10:00:00+00:00",
    )


def create_user_token(
    user_id: Optional[str] = "U1",
    scopes=None,
    issuer: str = "memor-app",
    audience: str = "memor-rag",
    expired: bool = False,
    secret: str = TEST_CLIENT_SECRET,
) -> str:
    if scopes is None:
        scopes = ["rag_query", "rag_write"]

    now = int(time.time())
    iat = now - 3600 if expired else now
    exp = iat - 10 if expired else now + 30

    payload = {
        "iss": issuer,
        "aud": audience,
        "iat": iat,
        "exp": exp,
        "scope": scopes,
        "client_id": "memor-app",
    }
    if user_id is not None:
        payload["sub"] = user_id

    return jwt.encode(payload, secret, algorithm="HS256")


def create_service_token(
    scopes=None,
    issuer: str = "memor-notes",
    secret: str = TEST_SERVICE_SECRET,
) -> str:
    if scopes is None:
        scopes = ["notes_events"]

    now = int(time.time())
    payload = {
        "iss": issuer,
        "aud": "memor-rag",
        "iat": now,
        "exp": now + 30,
        "scope": scopes,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def embedder() -> ConceptEmbedder:
    return ConceptEmbedder()


@pytest.fixture
def index() -> InMemoryVectorIndex:
    return InMemoryVectorIndex()
