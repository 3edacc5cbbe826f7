"""Schemas for multi-agent collaboration (POST /api/chat/group)."""

from pydantic import BaseModel, Field

from assistant_gateway.schemas.attachments import AttachmentIn


class CollaborateRequest(BaseModel):
    message: str = Field(..., min_length=1, description="The user question for the team.")
    conversation_id: str = Field(..., min_length=1, alias="conversationId")
    attachments: list[AttachmentIn] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class InitialThought(BaseModel):
    assistant_id: str = Field(..., alias="assistantId")
    name: str
    role: str = ""
    avatar: str = ""
    initial_thought: str = Field(..., alias="initialThought", description="Stage 1 text or an 'Error:' placeholder.")
    failed: bool = False

    model_config = {"populate_by_name": True}


class Discussion(BaseModel):
    assistant_id: str = Field(..., alias="assistantId")
    name: str
    avatar: str = ""
    discussion: str = Field(..., description="Stage 2 text or an 'Error:' placeholder.")
    failed: bool = False

    model_config = {"populate_by_name": True}


class CollaborativeResponse(BaseModel):
    user_question: str = Field(..., alias="userQuestion")
    initial_thoughts: list[InitialThought] = Field(..., alias="initialThoughts")
    cross_discussion: list[Discussion] = Field(..., alias="crossDiscussion")
    final_answer: str = Field(..., alias="finalAnswer")
    timestamp: str
    status: str = Field(..., description="done or partially_failed.")

    model_config = {"populate_by_name": True}


class CollaborateResponse(BaseModel):
    success: bool = True
    collaborative_response: CollaborativeResponse = Field(..., alias="collaborativeResponse")

    model_config = {"populate_by_name": True}
