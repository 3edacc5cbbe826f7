"""
Single-agent streaming relay.

Drives one upstream exchange (stateless completion or stateful session) and
republishes its text deltas to the caller as bytes, in upstream order.

    Idle -> SessionEstablishing -> Streaming -> Completed | Cancelled | Failed

A pump task moves upstream events into a queue so the relay can wait for the
correlation id with a deadline, watch for idle upstreams, and abort the
upstream by cancelling one task.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable

from assistant_gateway.agent.llm import UpstreamClient, describe_upstream_error
from assistant_gateway.core import stream_registry
from assistant_gateway.core.config import (
    CORRELATION_WAIT,
    OPENAI_INSTRUCTIONS,
    RELAY_IDLE_TIMEOUT,
)
from assistant_gateway.core.errors import MissingCredentialError, UpstreamError

logger = logging.getLogger(__name__)

_END = object()

# Receives the full text once the stream completes; returns the durable message id.
PersistCallback = Callable[[str], Awaitable[str | None]]


class RelayState(str, Enum):
    IDLE = "idle"
    SESSION_ESTABLISHING = "session_establishing"
    STREAMING = "streaming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


_TERMINAL = (RelayState.COMPLETED, RelayState.CANCELLED, RelayState.FAILED)


@dataclass
class RelayRequest:
    """newUserText is already merged with resolved attachment text."""

    prior_turns: list[dict[str, str]]
    new_user_text: str
    agent_id: str | None = None
    model: str | None = None
    instructions: str | None = None
    continuation_token: str | None = None

    @property
    def stateful(self) -> bool:
        return bool(self.agent_id)


@dataclass
class StreamSession:
    request: RelayRequest
    message_id: str
    state: RelayState = RelayState.IDLE
    correlation_id: str | None = None
    cancelled: bool = False
    error: str | None = None
    parts: list[str] = field(default_factory=list)
    on_complete: PersistCallback | None = None
    owner_id: str | None = None
    _queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    _buffer: list = field(default_factory=list)
    _pump: asyncio.Task | None = None

    @property
    def text(self) -> str:
        return "".join(self.parts)

    def reconcile_id(self, durable_id: str) -> None:
        """Swap the optimistic message id for the one the store assigned."""
        if not durable_id or durable_id == self.message_id:
            return
        old = self.message_id
        self.message_id = durable_id
        stream_registry.unregister(old)
        logger.info("[relay:reconcile_id] %s -> %s", old, durable_id)


def new_message_id() -> str:
    """Optimistic id shown to the client until the store assigns a durable one."""
    return f"temp-assistant-{uuid.uuid4().hex[:12]}"


def merge_instructions(base: str | None, turns: list[dict[str, str]]) -> str:
    """Base instructions first, then every system turn, in order."""
    system_parts = [t.get("content", "") for t in turns if t.get("role") == "system"]
    return "\n\n".join(p for p in [base or "", *system_parts] if p)


class StreamingRelay:
    def __init__(
        self,
        upstream: UpstreamClient,
        *,
        base_instructions: str = OPENAI_INSTRUCTIONS,
        correlation_wait: float = CORRELATION_WAIT,
        idle_timeout: float | None = RELAY_IDLE_TIMEOUT,
    ) -> None:
        self.upstream = upstream
        self.base_instructions = base_instructions
        self.correlation_wait = correlation_wait
        self.idle_timeout = idle_timeout

    # --- lifecycle ---

    async def open(
        self,
        request: RelayRequest,
        *,
        on_complete: PersistCallback | None = None,
        message_id: str | None = None,
        owner_id: str | None = None,
    ) -> StreamSession:
        """
        Start the upstream exchange and wait for its correlation id.

        Raises MissingCredentialError before any upstream call, and UpstreamError
        when the upstream fails before producing output. In stateless mode the
        wait is bounded by correlation_wait; the stream then proceeds without one.
        """
        if not self.upstream.has_credential:
            raise MissingCredentialError("Missing OPENAI_API_KEY")
        session = StreamSession(
            request=request,
            message_id=message_id or new_message_id(),
            on_complete=on_complete,
            owner_id=owner_id,
        )
        session.state = RelayState.SESSION_ESTABLISHING
        logger.info(
            "[relay:open] IN  mode=%s agent_id=%s prior_turns=%d text_len=%d",
            "stateful" if request.stateful else "stateless",
            request.agent_id, len(request.prior_turns), len(request.new_user_text),
        )
        session._pump = asyncio.create_task(self._pump(self._upstream_events(request), session._queue))
        stream_registry.register(session.message_id, session)

        wait = None if request.stateful else self.correlation_wait
        try:
            await asyncio.wait_for(self._await_correlation(session), timeout=wait)
        except asyncio.TimeoutError:
            logger.info("[relay:open] no correlation id after %.2fs; streaming without it", wait)
        except MissingCredentialError:
            await self._abort(session, RelayState.FAILED)
            raise
        except Exception as e:
            session.error = describe_upstream_error(e)
            await self._abort(session, RelayState.FAILED)
            logger.warning("[relay:open] upstream failed before streaming: %s", session.error)
            raise UpstreamError(session.error) from e
        logger.info("[relay:open] OUT correlation_id=%s message_id=%s", session.correlation_id, session.message_id)
        return session

    async def stream(self, session: StreamSession) -> AsyncIterator[bytes]:
        """
        Yield upstream text as UTF-8 bytes in emission order.

        Mid-stream failures end the iteration cleanly (what was sent stays sent).
        Closing or cancelling the iterator cancels the upstream.
        """
        if session.state in _TERMINAL:
            return
        session.state = RelayState.STREAMING
        try:
            while True:
                item = await self._next(session)
                if item is _END:
                    break
                kind = item[0]
                if kind == "content_delta":
                    session.parts.append(item[1])
                    yield item[1].encode("utf-8")
                elif kind == "correlation":
                    session.correlation_id = session.correlation_id or item[1]
                elif kind == "error":
                    session.error = describe_upstream_error(item[1])
                    session.state = RelayState.FAILED
                    logger.error("[relay:stream] upstream failed mid-stream after %d chars: %s", len(session.text), session.error)
                    break
            if session.state is RelayState.STREAMING:
                session.state = RelayState.COMPLETED
                logger.info("[relay:stream] OUT completed text_len=%d", len(session.text))
                await self._persist(session)
        except (asyncio.CancelledError, GeneratorExit):
            await self.cancel(session)
            raise
        finally:
            if session.state is not RelayState.COMPLETED:
                await self._abort(session, session.state if session.state in _TERMINAL else RelayState.CANCELLED)
            stream_registry.unregister(session.message_id)

    async def collect(self, session: StreamSession) -> str:
        """Drain the stream and return the full text (non-streaming callers)."""
        async for _ in self.stream(session):
            pass
        if session.state is RelayState.FAILED:
            raise UpstreamError(session.error or "Upstream failed")
        return session.text

    async def cancel(self, session: StreamSession) -> None:
        """Abort the upstream and stop consuming. Safe to call more than once."""
        if session.state in _TERMINAL:
            return
        session.cancelled = True
        logger.info("[relay:cancel] message_id=%s after %d chars", session.message_id, len(session.text))
        await self._abort(session, RelayState.CANCELLED)

    # --- internals ---

    def _upstream_events(self, request: RelayRequest) -> AsyncIterator[tuple]:
        if request.stateful:
            turns = [*request.prior_turns, {"role": "user", "content": request.new_user_text}]
            return self.upstream.stream_session(
                turns,
                request.agent_id,  # type: ignore[arg-type]
                model=request.model,
                instructions=request.instructions,
            )
        base = request.instructions if request.instructions is not None else self.base_instructions
        return self.upstream.stream_completion(
            request.new_user_text,
            model=request.model,
            instructions=merge_instructions(base, request.prior_turns) or None,
            previous_response_id=request.continuation_token,
        )

    @staticmethod
    async def _pump(events: AsyncIterator[tuple], queue: asyncio.Queue) -> None:
        try:
            async for item in events:
                await queue.put(item)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await queue.put(("error", e))
        finally:
            await events.aclose()
            queue.put_nowait(_END)

    async def _await_correlation(self, session: StreamSession) -> None:
        while session.correlation_id is None:
            item = await session._queue.get()
            if item is _END:
                session._buffer.append(item)
                return
            if item[0] == "correlation":
                session.correlation_id = item[1]
            elif item[0] == "error":
                raise item[1]
            else:
                session._buffer.append(item)

    async def _next(self, session: StreamSession):
        if session._buffer:
            return session._buffer.pop(0)
        if self.idle_timeout is None:
            return await session._queue.get()
        try:
            return await asyncio.wait_for(session._queue.get(), timeout=self.idle_timeout)
        except asyncio.TimeoutError:
            return ("error", UpstreamError(f"upstream idle for {self.idle_timeout:.0f}s"))

    async def _abort(self, session: StreamSession, state: RelayState) -> None:
        if session.state not in _TERMINAL:
            session.state = state
        pump = session._pump
        if pump is not None and not pump.done():
            pump.cancel()
            await asyncio.gather(pump, return_exceptions=True)
        stream_registry.unregister(session.message_id)

    async def _persist(self, session: StreamSession) -> None:
        if session.on_complete is None:
            return
        try:
            durable_id = await session.on_complete(session.text)
        except Exception:
            # output is already delivered; a failed save must not fail the stream
            logger.exception("[relay:persist] saving message_id=%s failed", session.message_id)
            return
        if durable_id:
            session.reconcile_id(durable_id)
