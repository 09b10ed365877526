from pydantic import BaseModel, ConfigDict, Field
from typing import List, Literal, Optional


class UserPromptDTO(BaseModel):
    role: Literal["user", "system"] = "user"
    content: str = Field(..., min_length=1)
    type: Literal["text"] = "text"


class SendMessageRequest(BaseModel):
    """Body of POST /send-message; field names follow the web client."""

    model_config = ConfigDict(populate_by_name=True)

    user_prompt: UserPromptDTO = Field(..., alias="userPrompt")
    type: Literal["text", "image"] = "text"
    selected_image_size: Optional[str] = Field(default=None, alias="selectedImageSize")
    selected_image_provider: Optional[str] = Field(default=None, alias="selectedImageProvider")
    active_conversation: Optional[str] = Field(default=None, alias="activeConversation")
    user_id: str = Field(..., min_length=1, alias="userId")


class SendMessageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    bot: str
    type: Literal["text", "image"]
    images: Optional[List[str]] = None
    conversation_id: str = Field(..., serialization_alias="conversationId")


class ErrorResponse(BaseModel):
    error: str
