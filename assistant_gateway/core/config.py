"""
Application configuration (env, settings, constants).

Responsibility: Centralize config loading, environment variables, and app-wide
constants. Keeps the rest of the app decoupled from how config is sourced.
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _optional_seconds(name: str) -> float | None:
    """Read an optional timeout in seconds. Empty or unset means no bound."""
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    value = float(raw)
    return value if value > 0 else None


# Logging
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"

# Upstream language-model service (OpenAI). APP_OPENAI_API_KEY takes precedence
# so the app key can differ from a developer's shell key.
OPENAI_API_KEY: str = (
    os.getenv("APP_OPENAI_API_KEY", "").strip() or os.getenv("OPENAI_API_KEY", "").strip()
)
OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4.1-mini").strip() or "gpt-4.1-mini"
OPENAI_INSTRUCTIONS: str = os.getenv("OPENAI_INSTRUCTIONS", "").strip()

# Default agent for stateful multi-turn sessions (empty = stateless mode)
ASSISTANT_ID: str = os.getenv("ASSISTANT_ID", "").strip()

# Collaborative synthesis (Stage 3)
SYNTHESIS_MODEL: str = os.getenv("SYNTHESIS_MODEL", "gpt-4o").strip() or "gpt-4o"
SYNTHESIS_MAX_TOKENS: int = 2000
SYNTHESIS_TEMPERATURE: float = 0.7

# Title generation
TITLE_MODEL: str = os.getenv("TITLE_MODEL", "gpt-4o-mini").strip() or "gpt-4o-mini"
TITLE_MAX_LENGTH: int = 50
TITLE_MAX_TOKENS: int = 20

# Session token issued by the identity collaborator (HS256 JWT in a cookie)
SESSION_SECRET: str = (
    os.getenv("SESSION_SECRET", "").strip() or os.getenv("NEXTAUTH_SECRET", "").strip()
)
SESSION_COOKIE: str = os.getenv("SESSION_COOKIE", "auth-token").strip() or "auth-token"

# Google OAuth / Drive (external document references)
GOOGLE_CLIENT_ID: str = os.getenv("GOOGLE_CLIENT_ID", "").strip()
GOOGLE_CLIENT_SECRET: str = os.getenv("GOOGLE_CLIENT_SECRET", "").strip()
GOOGLE_TOKEN_URL: str = "https://oauth2.googleapis.com/token"
DRIVE_API_BASE: str = "https://www.googleapis.com/drive/v3/files"

# Persistence collaborator and roster
DATABASE_PATH: str = os.getenv("DATABASE_PATH", "data/conversations.db").strip() or "data/conversations.db"
ROSTER_PATH: str = os.getenv("ROSTER_PATH", "config/roster.json").strip() or "config/roster.json"

# Timeouts (seconds). None = wait indefinitely.
STAGE_TASK_TIMEOUT: float | None = _optional_seconds("STAGE_TASK_TIMEOUT")
RELAY_IDLE_TIMEOUT: float | None = _optional_seconds("RELAY_IDLE_TIMEOUT")
CORRELATION_WAIT: float = 0.2
HTTP_TIMEOUT: float = 30.0
CREDENTIAL_SKEW: float = 30.0

# Attachments
ATTACHMENT_MAX_CHARS: int = 20000
