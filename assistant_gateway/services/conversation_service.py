"""
Conversation bookkeeping around generation: agent resolution, conversation
bootstrap, idempotent turn saving with optional rename, and title generation.

Called by the API handlers; no HTTP here. Store calls run in a worker thread so
the event loop is never blocked by sqlite.
"""

import asyncio
import logging
from dataclasses import dataclass

from assistant_gateway.agent.llm import UpstreamClient
from assistant_gateway.core.config import ASSISTANT_ID, TITLE_MAX_LENGTH, TITLE_MAX_TOKENS, TITLE_MODEL
from assistant_gateway.core.conversation_store import ConversationRef, ConversationStore
from assistant_gateway.core.errors import ConversationNotFoundError
from assistant_gateway.services.text_processing import DEFAULT_TITLE, local_title, truncate_title

logger = logging.getLogger(__name__)

TITLE_SYSTEM_PROMPT = (
    "Generate a short, descriptive title (max 50 characters) for this conversation. "
    "The title should capture the main topic or question being discussed. "
    "Return only the title, no quotes or extra text."
)


def resolve_agent_id(
    override: str | None,
    conversation: ConversationRef | None,
    default: str | None = None,
) -> str | None:
    """Request override wins, else the conversation's binding, else the configured default."""
    for candidate in (override, conversation.agent_id if conversation else None, ASSISTANT_ID if default is None else default):
        if candidate and candidate.strip():
            return candidate.strip()
    return None


@dataclass
class SavedMessage:
    id: str
    role: str
    content: str
    conversation_id: str


class ConversationService:
    def __init__(self, store: ConversationStore, upstream: UpstreamClient) -> None:
        self.store = store
        self.upstream = upstream

    async def get(self, conversation_id: str | None) -> ConversationRef | None:
        if not conversation_id:
            return None
        return await asyncio.to_thread(self.store.get_conversation, conversation_id)

    async def open_for_generation(
        self,
        conversation_id: str | None,
        agent_override: str | None,
        first_user_text: str,
        user_id: str | None = None,
    ) -> tuple[ConversationRef, str | None]:
        """
        Return the conversation to write into and the agent id to use.

        Creates the conversation (bound to the effective agent, titled from the
        first user text) when none is given. An unbound existing conversation
        gets bound to the agent it is first used with.
        """
        conversation = await self.get(conversation_id)
        agent_id = resolve_agent_id(agent_override, conversation)
        if conversation is None:
            if conversation_id:
                conversation = await asyncio.to_thread(self.store.ensure_conversation, conversation_id, user_id)
            else:
                conversation = await asyncio.to_thread(
                    self.store.create_conversation, user_id, agent_id, local_title(first_user_text)
                )
        if agent_id and not conversation.agent_id:
            await asyncio.to_thread(self.store.bind_agent, conversation.id, agent_id)
            conversation.agent_id = agent_id
        logger.info("[conversation_service:open] conversation_id=%s agent_id=%s", conversation.id, agent_id)
        return conversation, agent_id

    async def ensure(self, conversation_id: str, user_id: str | None = None) -> ConversationRef:
        return await asyncio.to_thread(self.store.ensure_conversation, conversation_id, user_id)

    async def save_turn(
        self,
        conversation_id: str,
        role: str,
        content: str,
        client_ref: str | None = None,
    ) -> str:
        return await asyncio.to_thread(self.store.save_turn, conversation_id, role, content, client_ref)

    async def save_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        client_ref: str | None = None,
        should_rename: bool = False,
    ) -> SavedMessage:
        """Idempotent save; an assistant save may also retitle the conversation from its first user turn."""
        await self.ensure(conversation_id)
        message_id = await self.save_turn(conversation_id, role, content, client_ref)
        if role == "assistant" and should_rename:
            turns = await asyncio.to_thread(self.store.list_turns, conversation_id)
            first_user = next((t for t in turns if t.role == "user"), None)
            if first_user is not None:
                await asyncio.to_thread(
                    self.store.rename, conversation_id, truncate_title(first_user.content, TITLE_MAX_LENGTH)
                )
        return SavedMessage(id=message_id, role=role, content=content, conversation_id=conversation_id)

    async def resolve_client_ref(self, client_ref: str) -> str | None:
        return await asyncio.to_thread(self.store.resolve_client_ref, client_ref)

    async def generate_title(self, conversation_id: str) -> str:
        """
        Ask the upstream for a short title from the first four turns.

        Falls back to a local title from the first user turn when the upstream
        call fails or returns nothing.
        """
        conversation = await self.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError("Conversation not found")
        turns = await asyncio.to_thread(self.store.list_turns, conversation_id)
        first = turns[:4]
        transcript = "\n".join(f"{t.role}: {t.content}" for t in first)
        first_user = next((t.content for t in turns if t.role == "user"), "")

        title = ""
        if transcript and self.upstream.has_credential:
            try:
                raw = await self.upstream.complete(
                    [
                        {"role": "system", "content": TITLE_SYSTEM_PROMPT},
                        {"role": "user", "content": transcript},
                    ],
                    model=TITLE_MODEL,
                    max_tokens=TITLE_MAX_TOKENS,
                    temperature=0.7,
                )
                title = truncate_title(raw.strip().strip('"').strip("'"), TITLE_MAX_LENGTH)
            except Exception as e:
                logger.warning("[conversation_service:generate_title] upstream failed, using local title: %s", e)
        if not title:
            title = local_title(first_user) if first_user else DEFAULT_TITLE
        await asyncio.to_thread(self.store.rename, conversation_id, title)
        logger.info("[conversation_service:generate_title] conversation_id=%s title=%r", conversation_id, title)
        return title
