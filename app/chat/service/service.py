from abc import ABC, abstractmethod
from app.chat.entity.chat import Conversation


class IChatRepository(ABC):
    @abstractmethod
    async def get_conversation(self, user_id: str, conversation_id: str) -> Conversation:
        """Load a conversation; raises NotFoundError when it does not exist."""
        pass

    @abstractmethod
    async def save_conversation(self, user_id: str, conversation: Conversation) -> str:
        """Persist the whole conversation, replacing any stored version."""
        pass
