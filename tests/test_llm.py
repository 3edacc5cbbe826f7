"""
Tests for the OpenAI adapter: event translation, failure mapping, run
cancellation and upstream error messages. The SDK client is a MagicMock with
AsyncMock endpoints, so nothing leaves the process.
"""

from types import SimpleNamespace as NS
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from assistant_gateway.agent.llm import UpstreamClient, describe_upstream_error
from assistant_gateway.core.errors import MissingCredentialError, UpstreamError


class FakeSdkStream:
    """Async-iterable event stream with the close() the SDK streams expose."""

    def __init__(self, events: list) -> None:
        self.events = events
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for event in self.events:
            yield event

    async def close(self) -> None:
        self.closed = True


def _text_delta(value: str) -> NS:
    return NS(event="thread.message.delta", data=NS(delta=NS(content=[NS(type="text", text=NS(value=value))])))


async def _collect(gen) -> list[tuple]:
    return [event async for event in gen]


class TestStreamCompletion:
    @pytest.mark.asyncio
    async def test_events_are_translated_in_order(self) -> None:
        stream = FakeSdkStream([
            NS(type="response.created", response=NS(id="resp_1")),
            NS(type="response.output_text.delta", delta="Hel"),
            NS(type="response.in_progress"),
            NS(type="response.output_text.delta", delta="lo"),
            NS(type="response.completed"),
        ])
        sdk = MagicMock()
        sdk.responses.create = AsyncMock(return_value=stream)

        events = await _collect(
            UpstreamClient(client=sdk).stream_completion(
                "Hello", model="gpt-test", instructions="Be brief.", previous_response_id="resp_0"
            )
        )

        assert events == [("correlation", "resp_1"), ("content_delta", "Hel"), ("content_delta", "lo"), ("content_done",)]
        assert stream.closed
        kwargs = sdk.responses.create.call_args.kwargs
        assert kwargs["model"] == "gpt-test"
        assert kwargs["input"] == "Hello"
        assert kwargs["stream"] is True
        assert kwargs["instructions"] == "Be brief."
        assert kwargs["previous_response_id"] == "resp_0"

    @pytest.mark.asyncio
    async def test_response_failed_raises_upstream_message(self) -> None:
        stream = FakeSdkStream([
            NS(type="response.created", response=NS(id="resp_1")),
            NS(type="response.failed", response=NS(error=NS(message="You exceeded your current quota"))),
        ])
        sdk = MagicMock()
        sdk.responses.create = AsyncMock(return_value=stream)

        with pytest.raises(UpstreamError) as exc_info:
            await _collect(UpstreamClient(client=sdk).stream_completion("Hello"))
        assert exc_info.value.message == "You exceeded your current quota"
        assert stream.closed

    @pytest.mark.asyncio
    async def test_missing_key_fails_before_any_call(self) -> None:
        client = UpstreamClient(api_key="")
        assert not client.has_credential
        with pytest.raises(MissingCredentialError):
            await _collect(client.stream_completion("Hello"))


class TestStreamSession:
    def _sdk(self, events: list) -> tuple[MagicMock, FakeSdkStream]:
        stream = FakeSdkStream(events)
        sdk = MagicMock()
        sdk.beta.threads.create = AsyncMock(return_value=NS(id="thread_1"))
        sdk.beta.threads.runs.create = AsyncMock(return_value=stream)
        sdk.beta.threads.runs.cancel = AsyncMock()
        return sdk, stream

    @pytest.mark.asyncio
    async def test_thread_is_seeded_and_deltas_streamed(self) -> None:
        sdk, stream = self._sdk([
            NS(event="thread.run.created", data=NS(id="run_1")),
            _text_delta("Hi"),
            _text_delta(" there"),
            NS(event="thread.run.completed", data=NS(id="run_1")),
        ])
        turns = [
            {"role": "system", "content": "ignored"},
            {"role": "user", "content": "first"},
            {"role": "assistant", "content": "reply"},
            {"role": "user", "content": "second"},
        ]

        events = await _collect(UpstreamClient(client=sdk).stream_session(turns, "asst_x", instructions="Be kind."))

        assert events == [("correlation", "thread_1"), ("content_delta", "Hi"), ("content_delta", " there"), ("content_done",)]
        assert sdk.beta.threads.create.call_args.kwargs["messages"] == turns[1:]
        assert sdk.beta.threads.runs.create.call_args.kwargs["assistant_id"] == "asst_x"
        assert sdk.beta.threads.runs.create.call_args.kwargs["instructions"] == "Be kind."
        assert stream.closed
        sdk.beta.threads.runs.cancel.assert_not_called()

    @pytest.mark.asyncio
    async def test_closing_early_cancels_the_run(self) -> None:
        sdk, stream = self._sdk([
            NS(event="thread.run.created", data=NS(id="run_1")),
            _text_delta("Hi"),
            _text_delta(" there"),
        ])
        gen = UpstreamClient(client=sdk).stream_session([{"role": "user", "content": "hello"}], "asst_x")
        assert await gen.__anext__() == ("correlation", "thread_1")
        assert await gen.__anext__() == ("content_delta", "Hi")
        await gen.aclose()

        assert stream.closed
        sdk.beta.threads.runs.cancel.assert_awaited_once_with("run_1", thread_id="thread_1")

    @pytest.mark.asyncio
    async def test_failed_run_raises_last_error(self) -> None:
        sdk, stream = self._sdk([
            NS(event="thread.run.created", data=NS(id="run_1")),
            NS(event="thread.run.failed", data=NS(last_error=NS(message="Rate limit reached"))),
        ])
        with pytest.raises(UpstreamError) as exc_info:
            await _collect(UpstreamClient(client=sdk).stream_session([{"role": "user", "content": "hi"}], "asst_x"))
        assert exc_info.value.message == "Rate limit reached"
        sdk.beta.threads.runs.cancel.assert_not_called()


class TestRunSession:
    def _sdk(self, run: NS) -> MagicMock:
        sdk = MagicMock()
        sdk.beta.threads.create = AsyncMock(return_value=NS(id="thread_1"))
        sdk.beta.threads.messages.create = AsyncMock()
        sdk.beta.threads.runs.create_and_poll = AsyncMock(return_value=run)
        sdk.beta.threads.messages.list = AsyncMock(
            return_value=NS(data=[NS(content=[NS(type="text", text=NS(value="My view"))])])
        )
        return sdk

    @pytest.mark.asyncio
    async def test_completed_run_returns_latest_message(self) -> None:
        sdk = self._sdk(NS(status="completed"))
        text = await UpstreamClient(client=sdk).run_session("asst_a", "Plan it", additional_instructions="Stay short.")
        assert text == "My view"
        sdk.beta.threads.messages.create.assert_awaited_once_with("thread_1", role="user", content="Plan it")
        assert sdk.beta.threads.runs.create_and_poll.call_args.kwargs["additional_instructions"] == "Stay short."

    @pytest.mark.asyncio
    async def test_unfinished_run_raises(self) -> None:
        sdk = self._sdk(NS(status="expired", last_error=None))
        with pytest.raises(UpstreamError) as exc_info:
            await UpstreamClient(client=sdk).run_session("asst_a", "Plan it")
        assert exc_info.value.message == "Run failed with status: expired"
        sdk.beta.threads.messages.list.assert_not_called()


class TestComplete:
    @pytest.mark.asyncio
    async def test_returns_stripped_content(self) -> None:
        sdk = MagicMock()
        sdk.chat.completions.create = AsyncMock(
            return_value=NS(choices=[NS(message=NS(content="  Launch planning \n"))])
        )
        out = await UpstreamClient(client=sdk).complete(
            [{"role": "user", "content": "title?"}], model="gpt-test", max_tokens=20
        )
        assert out == "Launch planning"
        kwargs = sdk.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-test" and kwargs["max_tokens"] == 20


class TestDescribeUpstreamError:
    def _status_error(self, body) -> openai.APIStatusError:
        request = httpx.Request("POST", "https://api.openai.com/v1/responses")
        response = httpx.Response(429, request=request)
        return openai.RateLimitError("Error code: 429", response=response, body=body)

    def test_prefers_message_from_error_body(self) -> None:
        exc = self._status_error({"message": "You exceeded your current quota", "type": "insufficient_quota"})
        assert describe_upstream_error(exc) == "You exceeded your current quota"

    def test_reads_nested_error_object(self) -> None:
        exc = self._status_error({"error": {"message": "Invalid API key"}})
        assert describe_upstream_error(exc) == "Invalid API key"

    def test_falls_back_to_sdk_message(self) -> None:
        assert describe_upstream_error(self._status_error(None)) == "Error code: 429"

    def test_other_errors(self) -> None:
        assert describe_upstream_error(UpstreamError("boom")) == "boom"
        assert describe_upstream_error(RuntimeError("socket closed")) == "socket closed"
        assert describe_upstream_error(TimeoutError()) == "TimeoutError"
