# app/chat/service/dispatch_service.py
"""
Dispatch pipeline: one chat turn from inbound prompt to persisted reply.

    load/create conversation -> append prompt -> generate (text or image)
    -> stage images -> append reply -> persist -> return reply

Any adapter, staging or persistence failure aborts the turn before the
conversation is written, so a failed turn leaves the stored conversation
untouched.
"""

import asyncio
import uuid
from dataclasses import dataclass
from typing import List, Literal, Optional, Sequence

from app.artifact.service.stager import ArtifactStager
from app.chat.entity.chat import (
    GENERATED_IMAGE_PLACEHOLDER,
    Conversation,
    GenerationRequest,
    HistoryEntry,
    ImageMessage,
    ImageResult,
    Message,
    StagedArtifact,
    TextMessage,
    TextResult,
)
from app.chat.service.service import IChatRepository
from app.core.errors import NotFoundError, ProviderError, StagingError
from app.core.logger import get_logger
from app.llm.service.router_service import ProviderRouter

logger = get_logger("DispatchPipeline")

# Conversation ids clients send when they have no active conversation
SENTINEL_CONVERSATION_IDS = {"", "null", "undefined"}


def new_conversation_id() -> str:
    return str(uuid.uuid4())


def is_sentinel_conversation_id(conversation_id: Optional[str]) -> bool:
    return conversation_id is None or conversation_id.strip().lower() in SENTINEL_CONVERSATION_IDS


def build_history_view(messages: Sequence[Message]) -> List[HistoryEntry]:
    """Reduce messages to role/content; image turns become a text placeholder."""
    return [
        HistoryEntry(
            role=m.role,
            content=GENERATED_IMAGE_PLACEHOLDER if m.type == "image" else m.content,
        )
        for m in messages
    ]


@dataclass
class DispatchOutcome:
    reply: Message
    conversation_id: str


class DispatchPipeline:
    """Routes a prompt to the right provider and keeps the conversation in step."""

    def __init__(self, repository: IChatRepository, router: ProviderRouter, stager: ArtifactStager):
        self.repository = repository
        self.router = router
        self.stager = stager

    async def dispatch(
        self,
        user_prompt: TextMessage,
        requested_type: Literal["text", "image"],
        user_id: str,
        conversation_id: Optional[str] = None,
        image_size: Optional[str] = None,
        provider_selector: Optional[str] = None,
    ) -> DispatchOutcome:
        conversation = await self._resolve_conversation(user_id, conversation_id)
        messages: List[Message] = [*conversation.messages, user_prompt]

        if requested_type == "image":
            reply = await self._generate_images(user_prompt.content, image_size, provider_selector)
        else:
            reply = await self._generate_text(build_history_view(messages))

        updated = Conversation(id=conversation.id, messages=[*messages, reply])
        await self.repository.save_conversation(user_id, updated)
        logger.info(
            f"Turn complete | user={user_id} conversation={updated.id} "
            f"type={reply.type} messages={len(updated.messages)}"
        )
        return DispatchOutcome(reply=reply, conversation_id=updated.id)

    async def _resolve_conversation(self, user_id: str, conversation_id: Optional[str]) -> Conversation:
        if is_sentinel_conversation_id(conversation_id):
            conversation = Conversation(id=new_conversation_id())
            logger.debug(f"Starting conversation {conversation.id} for user {user_id}")
            return conversation

        try:
            return await self.repository.get_conversation(user_id, conversation_id)
        except NotFoundError:
            # Clients may mint their own ids; keep theirs so the next turn finds it
            logger.info(f"Conversation {conversation_id} not found for user {user_id}; starting it")
            return Conversation(id=conversation_id)

    async def _generate_text(self, history: List[HistoryEntry]) -> TextMessage:
        provider = self.router.text_provider
        request = GenerationRequest(prompt=history[-1].content, capability="text", history=history)
        result = await self.router.generate(provider, request)
        if not isinstance(result, TextResult):
            raise ProviderError(f"{provider.name} returned {result.type} for a text request", provider=provider.name)
        return TextMessage(role="system", content=result.text)

    async def _generate_images(
        self,
        prompt: str,
        image_size: Optional[str],
        provider_selector: Optional[str],
    ) -> ImageMessage:
        provider = self.router.select_image_provider(provider_selector)
        request = GenerationRequest(prompt=prompt, capability="image", image_size=image_size)
        result = await self.router.generate(provider, request)
        if not isinstance(result, ImageResult):
            raise ProviderError(f"{provider.name} returned {result.type} for an image request", provider=provider.name)

        artifacts = await self._stage_all(result.images)
        return ImageMessage(role="system", images=[a.url for a in artifacts])

    async def _stage_all(self, payloads: List[str]) -> List[StagedArtifact]:
        """Stage every payload concurrently, in provider order.

        If any payload fails, the ones already staged are discarded and the
        first failure (in provider order) is raised.
        """
        results = await asyncio.gather(
            *(self.stager.stage(p) for p in payloads),
            return_exceptions=True,
        )
        staged = [r for r in results if isinstance(r, StagedArtifact)]
        failures = [r for r in results if isinstance(r, BaseException)]
        if not failures:
            return staged

        logger.error(f"Staging failed for {len(failures)}/{len(payloads)} image(s); discarding {len(staged)}")
        for artifact in staged:
            try:
                await self.stager.discard(artifact)
            except StagingError as e:
                logger.warning(f"Orphaned artifact {artifact.name} left in storage: {e}")
        raise failures[0]
