"""
API route aggregator: register endpoints; no logic — only delegate to handlers.
"""

import logging

from fastapi import APIRouter, Depends, Request

from assistant_gateway.agent.llm import UpstreamClient
from assistant_gateway.agent.relay import StreamingRelay
from assistant_gateway.agent.roster import AgentProfile
from assistant_gateway.api.dependencies import (
    get_conversation_service,
    get_relay,
    get_roster,
    get_upstream,
)
from assistant_gateway.api.handlers import (
    handle_cancel,
    handle_collaborate,
    handle_generate,
    handle_generate_title,
    handle_resolve_attachments,
    handle_resolve_message,
    handle_save_message,
)
from assistant_gateway.core.auth import SessionUser, optional_session, require_session
from assistant_gateway.schemas.attachments import ResolveAttachmentsRequest, ResolveAttachmentsResponse
from assistant_gateway.schemas.collaborate import CollaborateRequest, CollaborateResponse
from assistant_gateway.schemas.generate import GenerateRequest
from assistant_gateway.schemas.message import (
    CancelResponse,
    GenerateTitleRequest,
    GenerateTitleResponse,
    ResolveMessageResponse,
    SaveMessageRequest,
    SaveMessageResponse,
)
from assistant_gateway.services.conversation_service import ConversationService

logger = logging.getLogger(__name__)
router = APIRouter()


# --- System ---

@router.get("/health", tags=["system"])
def health():
    return {"ok": True}


# --- Single-agent generation ---

@router.post(
    "/api/chat",
    tags=["chat"],
    summary="Generate a reply from one agent",
    description=(
        "Streams the reply as raw UTF-8 text (default) or returns {text, conversationId, messageId, responseId} "
        "when stream is false. Correlation ids travel in X-Response-Id (stateless) or X-Assistant-Id/X-Thread-Id "
        "(stateful), plus X-Conversation-Id and X-Message-Id. 401 without an upstream credential, 500 with "
        "{error} on upstream failure."
    ),
)
async def post_chat(
    body: GenerateRequest,
    request: Request,
    user: SessionUser | None = Depends(optional_session),
    conversations: ConversationService = Depends(get_conversation_service),
    relay: StreamingRelay = Depends(get_relay),
):
    return await handle_generate(body, request, user, conversations, relay)


@router.post(
    "/api/chat/cancel/{message_id}",
    response_model=CancelResponse,
    tags=["chat"],
    summary="Cancel a live stream by its message id",
)
async def post_cancel(
    message_id: str,
    user: SessionUser | None = Depends(optional_session),
    relay: StreamingRelay = Depends(get_relay),
) -> CancelResponse:
    return await handle_cancel(message_id, user, relay)


# --- Multi-agent collaboration ---

@router.post(
    "/api/chat/group",
    response_model=CollaborateResponse,
    tags=["chat"],
    summary="Ask the whole agent team",
    description=(
        "Runs initial analysis and cross discussion across the roster, then synthesizes one answer. "
        "Failed agents appear in-band with an 'Error:' placeholder. 401 without a session, 500 with "
        "{error, details} when no final answer can be produced."
    ),
)
async def post_group_chat(
    body: CollaborateRequest,
    request: Request,
    user: SessionUser = Depends(require_session),
    upstream: UpstreamClient = Depends(get_upstream),
    roster: list[AgentProfile] = Depends(get_roster),
) -> CollaborateResponse:
    return await handle_collaborate(body, request, user, upstream, roster)


# --- Persistence ---

@router.post(
    "/api/chat/save-message",
    response_model=SaveMessageResponse,
    tags=["messages"],
    summary="Save one turn (idempotent)",
)
async def post_save_message(
    body: SaveMessageRequest,
    user: SessionUser = Depends(require_session),
    conversations: ConversationService = Depends(get_conversation_service),
) -> SaveMessageResponse:
    logger.info("[api:save_message] user_id=%s conversation_id=%s role=%s", user.user_id, body.conversation_id, body.role)
    return await handle_save_message(body, conversations)


@router.post(
    "/api/chat/generate-title",
    response_model=GenerateTitleResponse,
    tags=["messages"],
    summary="Generate a short conversation title",
)
async def post_generate_title(
    body: GenerateTitleRequest,
    user: SessionUser = Depends(require_session),
    conversations: ConversationService = Depends(get_conversation_service),
) -> GenerateTitleResponse:
    return await handle_generate_title(body.conversation_id, conversations)


@router.get(
    "/api/messages/resolve/{client_id}",
    response_model=ResolveMessageResponse,
    tags=["messages"],
    summary="Look up the durable id for an optimistic message id",
)
async def get_resolved_message(
    client_id: str,
    conversations: ConversationService = Depends(get_conversation_service),
) -> ResolveMessageResponse:
    return await handle_resolve_message(client_id, conversations)


# --- Attachments ---

@router.post(
    "/api/attachments/resolve",
    response_model=ResolveAttachmentsResponse,
    tags=["attachments"],
    summary="Resolve attachments to text without generating",
)
async def post_resolve_attachments(
    body: ResolveAttachmentsRequest,
    user: SessionUser | None = Depends(optional_session),
) -> ResolveAttachmentsResponse:
    return await handle_resolve_attachments(body.attachments, user)
