"""Schemas for single-agent generation (POST /api/chat)."""

from typing import Literal

from pydantic import BaseModel, Field

from assistant_gateway.schemas.attachments import AttachmentIn


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"] = Field(..., description="Turn role.")
    content: str = Field(..., description="Turn text.")


class GenerateRequest(BaseModel):
    """
    Request body for POST /api/chat. The last user message is the new turn;
    everything before it is prior context.
    """

    messages: list[ChatMessage] = Field(..., min_length=1, description="Conversation so far, oldest first.")
    conversation_id: str | None = Field(
        None, alias="conversationId", description="Existing conversation; a new one is created when omitted."
    )
    assistant_id: str | None = Field(
        None, alias="assistantId", description="Agent override. Selects the stateful session mode."
    )
    model: str | None = Field(None, description="Model override.")
    instructions: str | None = Field(None, description="Instructions override (replaces the configured base).")
    previous_response_id: str | None = Field(
        None, alias="previousResponseId", description="Continuation token from an earlier stateless exchange."
    )
    attachments: list[AttachmentIn] = Field(default_factory=list, description="Extra context for the new turn.")
    stream: bool = Field(True, description="Stream raw text (default) or return one JSON body.")

    model_config = {"populate_by_name": True}


class GenerateResponse(BaseModel):
    """Response for POST /api/chat when stream is false."""

    text: str = Field(..., description="Full generated text.")
    conversation_id: str = Field(..., alias="conversationId")
    message_id: str = Field(..., alias="messageId", description="Durable id of the saved assistant turn.")
    response_id: str | None = Field(
        None, alias="responseId", description="Correlation id (continuation token or session id)."
    )

    model_config = {"populate_by_name": True}
