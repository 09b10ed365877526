# app/chat/repository/chat_repository.py

from datetime import datetime, timezone
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from app.chat.entity.chat import Conversation
from app.chat.repository.sql_schema.conversation import ConversationModel
from app.chat.service.service import IChatRepository
from app.core.errors import NotFoundError, PersistenceError
from app.core.logger import get_logger

logger = get_logger(__name__)


class ChatRepository(IChatRepository):
    """Handles all database interactions for conversations."""

    def __init__(self, db_session_factory):
        self.db_session_factory = db_session_factory
        self.logger = logger

    # ────────────────────────────────────────────────
    # Conversation documents
    # ────────────────────────────────────────────────

    async def get_conversation(self, user_id: str, conversation_id: str) -> Conversation:
        """Fetch a conversation with all of its messages."""
        try:
            async with self.db_session_factory() as session:
                conv = await session.get(ConversationModel, (user_id, conversation_id))
        except (SQLAlchemyError, OSError, ConnectionError) as e:
            self.logger.error(f"Loading conversation {conversation_id} for user {user_id} failed: {e}")
            raise PersistenceError(f"Could not load conversation {conversation_id}") from e

        if conv is None:
            raise NotFoundError(f"Conversation {conversation_id} not found")

        try:
            return Conversation(id=conv.id, messages=conv.messages or [])
        except ValidationError as e:
            self.logger.error(f"Stored conversation {conversation_id} is malformed: {e}")
            raise PersistenceError(f"Stored conversation {conversation_id} is malformed") from e

    async def save_conversation(self, user_id: str, conversation: Conversation) -> str:
        """Upsert the whole conversation document."""
        document = [m.model_dump(exclude_none=True) for m in conversation.messages]
        now = datetime.now(timezone.utc)
        try:
            async with self.db_session_factory() as session:
                async with session.begin():
                    conv = await session.get(ConversationModel, (user_id, conversation.id))
                    if conv is None:
                        conv = ConversationModel(
                            user_id=user_id,
                            id=conversation.id,
                            created_at=now,
                        )
                        session.add(conv)
                    conv.messages = document
                    conv.message_count = len(document)
                    conv.last_activity = now
        except (SQLAlchemyError, OSError, ConnectionError) as e:
            self.logger.error(f"Saving conversation {conversation.id} for user {user_id} failed: {e}")
            raise PersistenceError(f"Could not save conversation {conversation.id}") from e

        self.logger.info(f"Conversation saved: {conversation.id} ({len(document)} messages)")
        return conversation.id
