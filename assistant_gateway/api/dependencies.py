"""
Shared service instances for the API, exposed as FastAPI dependencies.

Created lazily on first use so importing the app never touches the database,
the roster file or the upstream. Tests swap them via app.dependency_overrides.
"""

from fastapi import Depends

from assistant_gateway.agent.llm import UpstreamClient
from assistant_gateway.agent.relay import StreamingRelay
from assistant_gateway.agent.roster import AgentProfile, load_roster
from assistant_gateway.core.conversation_store import ConversationStore
from assistant_gateway.services.conversation_service import ConversationService

_store: ConversationStore | None = None
_upstream: UpstreamClient | None = None
_roster: list[AgentProfile] | None = None


def get_store() -> ConversationStore:
    global _store
    if _store is None:
        _store = ConversationStore()
        _store.init_db()
    return _store


def get_upstream() -> UpstreamClient:
    global _upstream
    if _upstream is None:
        _upstream = UpstreamClient()
    return _upstream


def get_roster() -> list[AgentProfile]:
    global _roster
    if _roster is None:
        _roster = load_roster()
    return _roster


def get_relay(upstream: UpstreamClient = Depends(get_upstream)) -> StreamingRelay:
    return StreamingRelay(upstream)


def get_conversation_service(
    store: ConversationStore = Depends(get_store),
    upstream: UpstreamClient = Depends(get_upstream),
) -> ConversationService:
    return ConversationService(store, upstream)
