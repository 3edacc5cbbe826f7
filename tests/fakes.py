"""
Test doubles: session tokens and an in-process fake of the upstream client
(the UpstreamClient surface used by the relay, the orchestrator and the
conversation service).
"""

import asyncio

import jwt

from assistant_gateway.core.errors import UpstreamError

TEST_SECRET = "test-session-secret"


def make_token(user_id: str = "user-1", secret: str = TEST_SECRET, **claims) -> str:
    """HS256 session token like the one the identity service issues."""
    return jwt.encode({"userId": user_id, **claims}, secret, algorithm="HS256")


class FakeUpstream:
    """
    Stream behaviour: yields a correlation id, then `deltas` in order. `fail_at`
    raises UpstreamError before that delta index; `gate` (an asyncio.Event)
    holds every delta after the first until it is set.
    """

    def __init__(
        self,
        *,
        deltas: list[str] | None = None,
        response_id: str = "resp_test_1",
        thread_id: str = "thread_test_1",
        credential: bool = True,
        fail_at: int | None = None,
        fail_before_correlation: Exception | None = None,
        synthesis: str = "Synthesized final answer.",
        title: str = "Launch planning",
    ) -> None:
        self.deltas = ["Hel", "lo", " world"] if deltas is None else deltas
        self.response_id = response_id
        self.thread_id = thread_id
        self.credential = credential
        self.fail_at = fail_at
        self.fail_before_correlation = fail_before_correlation
        self.synthesis = synthesis
        self.title = title
        self.gate: asyncio.Event | None = None
        self.delivered = 0
        self.closed = False
        self.stream_calls: list[dict] = []
        self.session_calls: list[dict] = []
        self.completions: list[dict] = []
        self.complete_error: Exception | None = None
        # (stage, agent_id) -> Exception / delay seconds
        self.agent_errors: dict[tuple[str, str], Exception] = {}
        self.agent_delays: dict[tuple[str, str], float] = {}
        self.events: list[tuple[str, str, str]] = []

    @property
    def has_credential(self) -> bool:
        return self.credential

    async def _deltas(self, correlation_id: str):
        try:
            if self.fail_before_correlation is not None:
                raise self.fail_before_correlation
            yield ("correlation", correlation_id)
            for i, delta in enumerate(self.deltas):
                if self.fail_at is not None and i == self.fail_at:
                    raise UpstreamError("upstream went away")
                if self.gate is not None and i > 0:
                    await self.gate.wait()
                self.delivered += 1
                yield ("content_delta", delta)
            yield ("content_done",)
        finally:
            self.closed = True

    def stream_completion(self, text, *, model=None, instructions=None, previous_response_id=None):
        self.stream_calls.append(
            {"text": text, "model": model, "instructions": instructions, "previous_response_id": previous_response_id}
        )
        return self._deltas(self.response_id)

    def stream_session(self, turns, agent_id, *, model=None, instructions=None):
        self.session_calls.append({"turns": turns, "agent_id": agent_id, "model": model, "instructions": instructions})
        return self._deltas(self.thread_id)

    async def run_session(self, agent_id, prompt, *, additional_instructions=None):
        stage = "stage2" if "you've seen the initial thoughts" in prompt else "stage1"
        self.events.append(("start", stage, agent_id))
        delay = self.agent_delays.get((stage, agent_id))
        if delay:
            await asyncio.sleep(delay)
        self.events.append(("settle", stage, agent_id))
        error = self.agent_errors.get((stage, agent_id))
        if error is not None:
            raise error
        return f"{stage} view from {agent_id}"

    async def complete(self, messages, *, model=None, max_tokens=2000, temperature=0.7):
        self.completions.append({"messages": messages, "model": model, "max_tokens": max_tokens})
        if self.complete_error is not None:
            raise self.complete_error
        if max_tokens <= 20:
            return self.title
        return self.synthesis
