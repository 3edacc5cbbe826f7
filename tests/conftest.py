"""
Shared fixtures: an in-process fake of the upstream client, a roster, a temp
conversation store and an API client with dependency overrides.

Nothing here touches the network.
"""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from assistant_gateway.agent.roster import AgentProfile
from assistant_gateway.core.conversation_store import ConversationStore
from tests.fakes import TEST_SECRET, FakeUpstream, make_token


@pytest.fixture
def fake_upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def roster() -> list[AgentProfile]:
    return [
        AgentProfile(id="asst_a", display_name="Alpha", role="Strategy", instructions="Think big."),
        AgentProfile(id="asst_b", display_name="Bravo", role="Marketing"),
        AgentProfile(id="asst_c", display_name="Charlie", role="Engineering"),
        AgentProfile(id="asst_d", display_name="Delta", role="Operations"),
    ]


@pytest.fixture
def store(tmp_path: Path) -> ConversationStore:
    s = ConversationStore(tmp_path / "conversations.db")
    s.init_db()
    return s


@pytest.fixture
def auth_headers(monkeypatch) -> dict[str, str]:
    monkeypatch.setattr("assistant_gateway.core.auth.SESSION_SECRET", TEST_SECRET)
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def client(fake_upstream, roster, store, monkeypatch):
    from assistant_gateway.api.dependencies import get_roster, get_store, get_upstream
    from assistant_gateway.main import app

    # stateless unless a test asks for an agent
    monkeypatch.setattr("assistant_gateway.services.conversation_service.ASSISTANT_ID", "")
    app.dependency_overrides[get_upstream] = lambda: fake_upstream
    app.dependency_overrides[get_roster] = lambda: roster
    app.dependency_overrides[get_store] = lambda: store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
