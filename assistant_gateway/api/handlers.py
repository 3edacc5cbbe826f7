"""
API handlers: read request data, call services, map results/errors to HTTP.

Responsibility: Bridge HTTP types and services. Marshalling, header building and
disconnect detection live here so the relay, the orchestrator and the services
stay free of FastAPI/HTTP types. GatewayError subclasses propagate to the
exception handler in main.py.
"""

import asyncio
import logging
from typing import AsyncIterator

from fastapi import HTTPException, Request
from fastapi.responses import StreamingResponse

from assistant_gateway.agent.llm import UpstreamClient
from assistant_gateway.agent.orchestrator import CollaborativeOrchestrator, CollaborativeResult
from assistant_gateway.agent.relay import RelayRequest, StreamingRelay, StreamSession, new_message_id
from assistant_gateway.agent.roster import AgentProfile
from assistant_gateway.core import stream_registry
from assistant_gateway.core.auth import SessionUser
from assistant_gateway.core.errors import MissingCredentialError
from assistant_gateway.schemas.attachments import (
    AttachmentIn,
    ResolveAttachmentsResponse,
    ResolvedAttachment,
)
from assistant_gateway.schemas.collaborate import (
    CollaborateRequest,
    CollaborateResponse,
    CollaborativeResponse,
    Discussion,
    InitialThought,
)
from assistant_gateway.schemas.generate import GenerateRequest, GenerateResponse
from assistant_gateway.schemas.message import (
    CancelResponse,
    GenerateTitleResponse,
    ResolveMessageResponse,
    SavedMessageOut,
    SaveMessageRequest,
    SaveMessageResponse,
)
from assistant_gateway.services.attachment_resolver import (
    AttachmentDescriptor,
    AttachmentResolver,
    merge_into_prompt,
    summarize,
)
from assistant_gateway.services.conversation_service import ConversationService

logger = logging.getLogger(__name__)

DISCONNECT_POLL_SECONDS = 0.5


def _to_descriptors(attachments: list[AttachmentIn]) -> list[AttachmentDescriptor]:
    return [
        AttachmentDescriptor(name=a.name, declared_mime_type=a.type, text=a.text, external_ref=a.external_ref)
        for a in attachments
    ]


async def _resolve_attachments(
    attachments: list[AttachmentIn], session: SessionUser | None
) -> list[AttachmentDescriptor]:
    descriptors = _to_descriptors(attachments)
    if descriptors:
        resolver = AttachmentResolver(credentials=session.credentials if session else None)
        await resolver.resolve(descriptors)
    return descriptors


# --- single-agent generation ---


def _split_turns(body: GenerateRequest) -> tuple[list[dict[str, str]], str]:
    """
    Prior turns and the new user text (the last user message). System turns
    after it are kept with the prior turns so they still reach the instructions.
    """
    for idx in range(len(body.messages) - 1, -1, -1):
        if body.messages[idx].role == "user":
            prior = [{"role": m.role, "content": m.content} for m in body.messages[:idx]]
            prior += [
                {"role": m.role, "content": m.content} for m in body.messages[idx + 1:] if m.role == "system"
            ]
            return prior, body.messages[idx].content
    raise HTTPException(status_code=400, detail="messages must contain a user message")


def _correlation_headers(session: StreamSession, conversation_id: str) -> dict[str, str]:
    headers = {
        "Cache-Control": "no-cache",
        "X-Accel-Buffering": "no",
        "X-Conversation-Id": conversation_id,
        "X-Message-Id": session.message_id,
    }
    if session.request.stateful:
        headers["X-Assistant-Id"] = session.request.agent_id or ""
        if session.correlation_id:
            headers["X-Thread-Id"] = session.correlation_id
    elif session.correlation_id:
        headers["X-Response-Id"] = session.correlation_id
    return headers


async def _relay_body(relay: StreamingRelay, session: StreamSession, request: Request) -> AsyncIterator[bytes]:
    """Forward relay bytes; stop and cancel the upstream once the caller goes away."""
    chunks = relay.stream(session)
    try:
        async for chunk in chunks:
            if await request.is_disconnected():
                logger.info("[handlers:relay_body] client disconnected message_id=%s", session.message_id)
                await relay.cancel(session)
                break
            yield chunk
    finally:
        await chunks.aclose()


async def handle_generate(
    body: GenerateRequest,
    request: Request,
    user: SessionUser | None,
    conversations: ConversationService,
    relay: StreamingRelay,
):
    """
    Resolve attachments, bootstrap the conversation, save the user turn, then
    stream (or collect) the agent's reply. The assistant turn is saved when the
    stream completes and the optimistic message id is swapped for the durable one.
    """
    if not relay.upstream.has_credential:
        raise MissingCredentialError("Missing OPENAI_API_KEY")
    prior_turns, user_text = _split_turns(body)
    logger.info(
        "[handlers:generate] IN  conversation_id=%s assistant_id=%s turns=%d attachments=%d stream=%s",
        body.conversation_id, body.assistant_id, len(body.messages), len(body.attachments), body.stream,
    )

    descriptors = await _resolve_attachments(body.attachments, user)
    prompt = merge_into_prompt(user_text, descriptors)

    conversation, agent_id = await conversations.open_for_generation(
        body.conversation_id, body.assistant_id, user_text, user.user_id if user else None
    )
    await conversations.save_turn(conversation.id, "user", user_text + summarize(descriptors))

    optimistic_id = new_message_id()

    async def persist(text: str) -> str | None:
        if not text:
            return None
        return await conversations.save_turn(conversation.id, "assistant", text, client_ref=optimistic_id)

    relay_request = RelayRequest(
        prior_turns=prior_turns,
        new_user_text=prompt,
        agent_id=agent_id,
        model=body.model,
        instructions=body.instructions,
        continuation_token=body.previous_response_id,
    )
    session = await relay.open(
        relay_request, on_complete=persist, message_id=optimistic_id, owner_id=user.user_id if user else None
    )

    if not body.stream:
        text = await relay.collect(session)
        return GenerateResponse(
            text=text,
            conversation_id=conversation.id,
            message_id=session.message_id,
            response_id=session.correlation_id,
        )

    return StreamingResponse(
        _relay_body(relay, session, request),
        media_type="text/plain; charset=utf-8",
        headers=_correlation_headers(session, conversation.id),
    )


async def handle_cancel(message_id: str, user: SessionUser | None, relay: StreamingRelay) -> CancelResponse:
    """
    Cancel a live stream. Streams started with a session can only be cancelled by
    the same user; anonymous streams by anyone holding the message id.
    """
    session = stream_registry.get(message_id)
    if session is None:
        return CancelResponse(cancelled=False)
    if session.owner_id and (user is None or user.user_id != session.owner_id):
        logger.warning("[handlers:cancel] refused message_id=%s: not the stream owner", message_id)
        return CancelResponse(cancelled=False)
    await relay.cancel(session)
    return CancelResponse(cancelled=True)


# --- multi-agent collaboration ---


def _collaborative_out(result: CollaborativeResult, roster: list[AgentProfile]) -> CollaborateResponse:
    profiles = {a.id: a for a in roster}
    unknown = AgentProfile(id="", display_name="")

    initial = [
        InitialThought(
            assistant_id=r.agent_id,
            name=r.name,
            role=profiles.get(r.agent_id, unknown).role,
            avatar=profiles.get(r.agent_id, unknown).avatar,
            initial_thought=r.text,
            failed=r.failed,
        )
        for r in result.stage1_results
    ]
    discussion = [
        Discussion(
            assistant_id=r.agent_id,
            name=r.name,
            avatar=profiles.get(r.agent_id, unknown).avatar,
            discussion=r.text,
            failed=r.failed,
        )
        for r in result.stage2_results
    ]
    return CollaborateResponse(
        success=True,
        collaborative_response=CollaborativeResponse(
            user_question=result.user_question,
            initial_thoughts=initial,
            cross_discussion=discussion,
            final_answer=result.final_answer,
            timestamp=result.timestamp,
            status=result.status.value,
        ),
    )


async def _cancel_on_disconnect(request: Request, orchestrator: CollaborativeOrchestrator) -> None:
    while True:
        if await request.is_disconnected():
            orchestrator.cancel()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


async def handle_collaborate(
    body: CollaborateRequest,
    request: Request,
    user: SessionUser,
    upstream: UpstreamClient,
    roster: list[AgentProfile],
) -> CollaborateResponse:
    """Run the three-stage pipeline. A client that disconnects stops it at the next stage boundary."""
    question = body.message.strip()
    if not question:
        raise HTTPException(status_code=400, detail="Message is required")
    logger.info(
        "[handlers:collaborate] IN  user_id=%s conversation_id=%s agents=%d",
        user.user_id, body.conversation_id, len(roster),
    )
    descriptors = await _resolve_attachments(body.attachments, user)
    orchestrator = CollaborativeOrchestrator(upstream, roster)
    watcher = asyncio.create_task(_cancel_on_disconnect(request, orchestrator))
    try:
        result = await orchestrator.run(merge_into_prompt(question, descriptors))
    finally:
        watcher.cancel()
        await asyncio.gather(watcher, return_exceptions=True)
    logger.info("[handlers:collaborate] OUT status=%s", result.status.value)
    return _collaborative_out(result, roster)


# --- persistence ---


async def handle_save_message(body: SaveMessageRequest, conversations: ConversationService) -> SaveMessageResponse:
    saved = await conversations.save_message(
        body.conversation_id,
        body.role,
        body.content,
        client_ref=body.client_id,
        should_rename=body.should_rename,
    )
    return SaveMessageResponse(
        success=True,
        message=SavedMessageOut(
            id=saved.id, role=saved.role, content=saved.content, conversation_id=saved.conversation_id
        ),
        client_id=body.client_id,
    )


async def handle_generate_title(conversation_id: str, conversations: ConversationService) -> GenerateTitleResponse:
    title = await conversations.generate_title(conversation_id)
    return GenerateTitleResponse(title=title)


async def handle_resolve_message(client_id: str, conversations: ConversationService) -> ResolveMessageResponse:
    message_id = await conversations.resolve_client_ref(client_id)
    return ResolveMessageResponse(client_id=client_id, message_id=message_id)


async def handle_resolve_attachments(
    attachments: list[AttachmentIn], user: SessionUser | None
) -> ResolveAttachmentsResponse:
    descriptors = await _resolve_attachments(attachments, user)
    return ResolveAttachmentsResponse(
        attachments=[
            ResolvedAttachment(
                name=d.name,
                mime_type=d.declared_mime_type,
                resolved_text=d.resolved_text,
                unresolved_reason=d.unresolved_reason,
                link=d.link,
            )
            for d in descriptors
        ]
    )
