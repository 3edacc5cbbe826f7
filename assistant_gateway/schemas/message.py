"""Schemas for message persistence, titles and stream cancellation."""

from typing import Literal

from pydantic import BaseModel, Field


class SaveMessageRequest(BaseModel):
    """Saving the same (role, content, conversationId) twice stores one turn."""

    role: Literal["user", "assistant"]
    content: str = Field(..., min_length=1)
    conversation_id: str = Field(..., min_length=1, alias="conversationId")
    client_id: str | None = Field(None, alias="clientId", description="Optimistic id the client shows until saved.")
    should_rename: bool = Field(
        False, alias="shouldRename", description="Retitle the conversation from its first user turn."
    )

    model_config = {"populate_by_name": True}


class SavedMessageOut(BaseModel):
    id: str
    role: str
    content: str
    conversation_id: str = Field(..., alias="conversationId")

    model_config = {"populate_by_name": True}


class SaveMessageResponse(BaseModel):
    success: bool = True
    message: SavedMessageOut
    client_id: str | None = Field(None, alias="clientId")

    model_config = {"populate_by_name": True}


class GenerateTitleRequest(BaseModel):
    conversation_id: str = Field(..., min_length=1, alias="conversationId")

    model_config = {"populate_by_name": True}


class GenerateTitleResponse(BaseModel):
    title: str


class CancelResponse(BaseModel):
    cancelled: bool = Field(..., description="False when no live stream had that message id.")


class ResolveMessageResponse(BaseModel):
    client_id: str = Field(..., alias="clientId")
    message_id: str | None = Field(None, alias="messageId", description="Durable id, or null if never saved.")

    model_config = {"populate_by_name": True}
