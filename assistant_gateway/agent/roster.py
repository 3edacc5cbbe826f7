"""
Agent roster: static AgentProfile entries loaded from a JSON config file.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from assistant_gateway.core.config import ROSTER_PATH

logger = logging.getLogger(__name__)

_ROOT = Path(__file__).resolve().parent.parent.parent


@dataclass(frozen=True)
class AgentProfile:
    id: str
    display_name: str
    instructions: str = ""
    role: str = ""
    avatar: str = ""

    @property
    def label(self) -> str:
        return f"{self.display_name} ({self.role})" if self.role else self.display_name


def load_roster(path: str | Path = ROSTER_PATH) -> list[AgentProfile]:
    """
    Read the roster file: a JSON list of {id, name, role?, avatar?, instructions?}.

    Raises ValueError when the file is empty, malformed or repeats an id.
    """
    p = Path(path)
    if not p.is_absolute():
        p = _ROOT / p
    data = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(data, list) or not data:
        raise ValueError(f"roster {p} must be a non-empty JSON list")
    roster: list[AgentProfile] = []
    seen: set[str] = set()
    for entry in data:
        agent_id = (entry.get("id") or "").strip()
        name = (entry.get("name") or "").strip()
        if not agent_id or not name:
            raise ValueError(f"roster entry needs id and name: {entry!r}")
        if agent_id in seen:
            raise ValueError(f"duplicate roster id {agent_id!r}")
        seen.add(agent_id)
        roster.append(
            AgentProfile(
                id=agent_id,
                display_name=name,
                instructions=(entry.get("instructions") or "").strip(),
                role=(entry.get("role") or "").strip(),
                avatar=entry.get("avatar") or "",
            )
        )
    logger.info("[roster:load] path=%s agents=%s", p, [a.display_name for a in roster])
    return roster
