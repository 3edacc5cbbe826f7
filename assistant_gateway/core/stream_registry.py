"""
In-memory registry of live relay sessions. Keyed by the client-visible message id
so a caller can cancel a stream it started without holding the connection.
"""

import logging
import threading
from typing import Any

logger = logging.getLogger(__name__)

# message_id -> StreamSession
_sessions: dict[str, Any] = {}
_lock = threading.Lock()


def register(message_id: str, session: Any) -> None:
    if not message_id:
        return
    with _lock:
        _sessions[message_id] = session
    logger.info("[stream_registry:register] message_id=%s live=%d", message_id, len(_sessions))


def unregister(message_id: str) -> None:
    with _lock:
        _sessions.pop(message_id, None)


def get(message_id: str) -> Any | None:
    with _lock:
        return _sessions.get(message_id)


def live_count() -> int:
    with _lock:
        return len(_sessions)
