"""
Upstream LLM client: OpenAI, in its two integration modes plus plain completions.

- Stateless single-turn streaming (Responses API, continuation via previous_response_id).
- Stateful multi-turn sessions (Assistants threads + runs), streamed or run to completion.
- Non-streaming chat completions (synthesis, titles).

Streams are exposed as async generators of tuples, consumed in a loop:
    ("correlation", id)      as soon as the upstream assigns one
    ("content_delta", str)   each text fragment, in emission order
    ("content_done",)        upstream finished normally
Closing the generator early aborts the upstream stream (and cancels the run).
"""

import logging
from typing import Any, AsyncIterator

import openai
from openai import AsyncOpenAI

from assistant_gateway.core.config import OPENAI_API_KEY, OPENAI_MODEL
from assistant_gateway.core.errors import MissingCredentialError, UpstreamError

logger = logging.getLogger(__name__)

_FAILED_RUN_EVENTS = ("thread.run.failed", "thread.run.cancelled", "thread.run.expired")


def describe_upstream_error(exc: BaseException) -> str:
    """Best human-readable message, preferring what the upstream itself reported."""
    if isinstance(exc, openai.APIStatusError):
        body = exc.body if isinstance(exc.body, dict) else {}
        inner = body.get("error") if isinstance(body.get("error"), dict) else body
        return (inner or {}).get("message") or exc.message or f"upstream status {exc.status_code}"
    if isinstance(exc, UpstreamError):
        return exc.message
    return str(exc) or exc.__class__.__name__


class UpstreamClient:
    """Thin async wrapper over AsyncOpenAI. One instance per app; no per-request state."""

    def __init__(self, api_key: str | None = None, client: AsyncOpenAI | None = None) -> None:
        self.api_key = OPENAI_API_KEY if api_key is None else api_key
        self._client = client

    @property
    def has_credential(self) -> bool:
        return bool(self.api_key) or self._client is not None

    def _openai(self) -> AsyncOpenAI:
        if not self.has_credential:
            raise MissingCredentialError("Missing OPENAI_API_KEY")
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    # --- stateless single-turn ---

    async def stream_completion(
        self,
        text: str,
        *,
        model: str | None = None,
        instructions: str | None = None,
        previous_response_id: str | None = None,
    ) -> AsyncIterator[tuple]:
        client = self._openai()
        kwargs: dict[str, Any] = {}
        if instructions:
            kwargs["instructions"] = instructions
        if previous_response_id:
            kwargs["previous_response_id"] = previous_response_id
        logger.info(
            "[llm:stream_completion] IN  input_len=%d model=%s continuation=%s",
            len(text), model or OPENAI_MODEL, bool(previous_response_id),
        )
        stream = await client.responses.create(
            model=model or OPENAI_MODEL,
            input=text,
            stream=True,
            store=True,
            **kwargs,
        )
        try:
            async for event in stream:
                etype = getattr(event, "type", "")
                if etype == "response.created":
                    yield ("correlation", event.response.id)
                elif etype == "response.output_text.delta":
                    if event.delta:
                        yield ("content_delta", event.delta)
                elif etype == "response.failed":
                    err = getattr(event.response, "error", None)
                    raise UpstreamError(getattr(err, "message", None) or "Response failed")
                elif etype == "error":
                    raise UpstreamError(getattr(event, "message", None) or "Upstream stream error")
            logger.info("[llm:stream_completion] OUT done")
            yield ("content_done",)
        finally:
            await stream.close()

    # --- stateful multi-turn ---

    async def stream_session(
        self,
        turns: list[dict[str, str]],
        agent_id: str,
        *,
        model: str | None = None,
        instructions: str | None = None,
    ) -> AsyncIterator[tuple]:
        """Create a thread seeded with `turns`, start a run, stream its text deltas."""
        client = self._openai()
        seed = [
            {"role": t["role"], "content": t["content"]}
            for t in turns
            if t.get("role") in ("user", "assistant") and t.get("content")
        ]
        logger.info("[llm:stream_session] IN  agent_id=%s turns=%d", agent_id, len(seed))
        thread = await client.beta.threads.create(messages=seed)
        yield ("correlation", thread.id)

        kwargs: dict[str, Any] = {}
        if model:
            kwargs["model"] = model
        if instructions:
            kwargs["instructions"] = instructions
        stream = await client.beta.threads.runs.create(
            thread.id, assistant_id=agent_id, stream=True, **kwargs
        )
        run_id: str | None = None
        finished = False
        try:
            async for event in stream:
                name = getattr(event, "event", "")
                if name == "thread.run.created":
                    run_id = event.data.id
                elif name == "thread.message.delta":
                    for part in event.data.delta.content or []:
                        if part.type == "text" and part.text and part.text.value:
                            yield ("content_delta", part.text.value)
                elif name in _FAILED_RUN_EVENTS:
                    last_error = getattr(event.data, "last_error", None)
                    finished = True
                    raise UpstreamError(
                        getattr(last_error, "message", None) or f"Run ended with {name.rsplit('.', 1)[-1]}"
                    )
                elif name == "error":
                    finished = True
                    raise UpstreamError(getattr(event.data, "message", None) or "Upstream stream error")
            finished = True
            logger.info("[llm:stream_session] OUT done thread_id=%s", thread.id)
            yield ("content_done",)
        finally:
            await stream.close()
            if not finished and run_id:
                try:
                    await client.beta.threads.runs.cancel(run_id, thread_id=thread.id)
                    logger.info("[llm:stream_session] cancelled run_id=%s", run_id)
                except openai.OpenAIError as e:
                    logger.warning("[llm:stream_session] run cancel failed run_id=%s: %s", run_id, e)

    async def run_session(
        self,
        agent_id: str,
        prompt: str,
        *,
        additional_instructions: str | None = None,
    ) -> str:
        """Fresh thread, one user message, run to completion, return the reply text."""
        client = self._openai()
        thread = await client.beta.threads.create()
        await client.beta.threads.messages.create(thread.id, role="user", content=prompt)
        kwargs: dict[str, Any] = {}
        if additional_instructions:
            kwargs["additional_instructions"] = additional_instructions
        run = await client.beta.threads.runs.create_and_poll(
            thread_id=thread.id, assistant_id=agent_id, **kwargs
        )
        if run.status != "completed":
            last_error = getattr(run, "last_error", None)
            raise UpstreamError(
                getattr(last_error, "message", None) or f"Run failed with status: {run.status}"
            )
        page = await client.beta.threads.messages.list(thread_id=thread.id, order="desc", limit=1)
        if not page.data or not page.data[0].content:
            return "No response"
        block = page.data[0].content[0]
        text = block.text.value if block.type == "text" else "No response"
        logger.info("[llm:run_session] OUT agent_id=%s text_len=%d", agent_id, len(text))
        return text

    # --- plain completion ---

    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        model: str | None = None,
        max_tokens: int = 2000,
        temperature: float = 0.7,
    ) -> str:
        client = self._openai()
        response = await client.chat.completions.create(
            model=model or OPENAI_MODEL,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        msg = response.choices[0].message if response.choices else None
        out = ((msg.content if msg else None) or "").strip()
        logger.info("[llm:complete] OUT model=%s response_len=%d", model or OPENAI_MODEL, len(out))
        return out
