"""Shared test fixtures and protocol-conforming fakes."""

import base64
from typing import Dict, List, Optional, Tuple

import pytest

from app.artifact.service.stager import ArtifactStager, IBlobStore
from app.chat.entity.chat import Conversation, GenerationRequest, ImageResult, TextResult
from app.chat.service.dispatch_service import DispatchPipeline
from app.chat.service.service import IChatRepository
from app.conf.config import ProviderCallPolicy
from app.core.errors import NotFoundError, PersistenceError
from app.llm.service.provider.base_provider import BaseProvider
from app.llm.service.router_service import ProviderRouter

PNG_1 = base64.b64encode(b"\x89PNG\r\n\x1a\n first artifact").decode()
PNG_2 = base64.b64encode(b"\x89PNG\r\n\x1a\n second artifact, a little longer").decode()
DALLE_URL = "https://oaidalleapiprodscus.blob.core.windows.net/private/img-abc.png?st=2023&sig=xyz"

# --- Protocol-conforming Fakes ---


class FakeChatRepository(IChatRepository):
    """In-memory conversation store keyed by (user_id, conversation_id)."""

    def __init__(self):
        self.documents: Dict[Tuple[str, str], dict] = {}
        self.save_calls = 0
        self.fail_save = False

    async def get_conversation(self, user_id: str, conversation_id: str) -> Conversation:
        doc = self.documents.get((user_id, conversation_id))
        if doc is None:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        return Conversation.model_validate(doc)

    async def save_conversation(self, user_id: str, conversation: Conversation) -> str:
        self.save_calls += 1
        if self.fail_save:
            raise PersistenceError(f"Could not save conversation {conversation.id}")
        self.documents[(user_id, conversation.id)] = conversation.model_dump()
        return conversation.id

    def seed(self, user_id: str, doc: dict) -> None:
        self.documents[(user_id, doc["id"])] = doc


class FakeBlobStore(IBlobStore):
    """Keeps uploads in a dict and signs with a predictable URL."""

    def __init__(self):
        self.objects: Dict[str, Tuple[bytes, str]] = {}
        self.deleted: List[str] = []
        self.sign_requests: List[Tuple[str, int]] = []
        self.fail_upload = False
        self.fail_sign = False

    async def upload(self, data: bytes, name: str, content_type: str) -> str:
        if self.fail_upload:
            raise ConnectionError("bucket unavailable")
        self.objects[name] = (data, content_type)
        return name

    async def create_signed_url(self, name: str, expires_in: int) -> str:
        self.sign_requests.append((name, expires_in))
        if self.fail_sign:
            raise ValueError("signing refused")
        return f"https://storage.test/{name}?token=signed"

    async def delete(self, name: str) -> None:
        self.deleted.append(name)
        self.objects.pop(name, None)


class FakeProvider(BaseProvider):
    """Replays scripted outcomes; the last one repeats. Exceptions are raised."""

    def __init__(self, name: str, outcomes: Optional[list] = None, enabled: bool = True):
        self.name = name
        self._outcomes = list(outcomes or [])
        self._enabled = enabled
        self.requests: List[GenerationRequest] = []

    def is_enabled(self) -> bool:
        return self._enabled

    def script(self, *outcomes) -> None:
        self._outcomes = list(outcomes)

    async def generate(self, request: GenerationRequest):
        self.requests.append(request)
        outcome = self._outcomes.pop(0) if len(self._outcomes) > 1 else self._outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


# --- Fixtures ---


@pytest.fixture
def repository() -> FakeChatRepository:
    return FakeChatRepository()


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture
def text_provider() -> FakeProvider:
    return FakeProvider("openai", [TextResult(text="Hi there! How can I help?")])


@pytest.fixture
def dalle_provider() -> FakeProvider:
    return FakeProvider("DALL-E", [ImageResult(images=[DALLE_URL])])


@pytest.fixture
def stability_provider() -> FakeProvider:
    return FakeProvider("stability", [ImageResult(images=[PNG_1, PNG_2])])


@pytest.fixture
def router(text_provider, dalle_provider, stability_provider) -> ProviderRouter:
    return ProviderRouter(
        text_provider=text_provider,
        image_providers={"DALL-E": dalle_provider, "stability": stability_provider},
        fallback_image_provider="stability",
        policy=ProviderCallPolicy(request_timeout_ms=2000, max_retries=2, retry_delay_ms=0),
    )


class StubFetchStager(ArtifactStager):
    """Stager whose remote fetches return fixed bytes instead of hitting the network."""

    fetched_bytes = b"\x89PNG\r\n\x1a\n remote image bytes"

    async def _fetch(self, url: str):
        return self.fetched_bytes, "image/png", "png"


@pytest.fixture
def stager(blob_store) -> ArtifactStager:
    return StubFetchStager(blob_store)


@pytest.fixture
def pipeline(repository, router, stager) -> DispatchPipeline:
    return DispatchPipeline(repository, router, stager)
