"""Tests for the OpenAI-compatible structured generation adapter."""

import json

import httpx
import pytest

from branchwork.ai import (
    ChatCompletionsGenerator,
    ChatMessage,
    GenerationError,
    StructuredOutputError,
)
from branchwork.ai.chat_completions import extract_json
from branchwork.summarization.schemas import BranchSummary


def _completion(content, usage=None):
    body = {
        "model": "test-model-2026",
        "choices": [{"message": {"role": "assistant", "content": content}}],
    }
    if usage:
        body["usage"] = usage
    return httpx.Response(200, json=body)


def _generator(handler, **kwargs):
    return ChatCompletionsGenerator(
        name="openai",
        base_url="https://api.example.test/v1/",
        default_model="test-model",
        api_key="sk-test",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


MESSAGES = [
    ChatMessage(role="system", content="You summarize conversations."),
    ChatMessage(role="user", content="Summarize this."),
]


class TestExtractJson:
    def test_fenced_block(self):
        assert extract_json('Sure:\n```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_embedded_object(self):
        assert extract_json('Here you go {"a": 1} done') == '{"a": 1}'

    def test_plain_text(self):
        assert extract_json("  nothing  ") == "nothing"


class TestGenerateStructured:
    @pytest.mark.asyncio
    async def test_success(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return _completion(
                json.dumps({"summary": "ok", "key_decisions": ["a"]}),
                usage={"prompt_tokens": 12, "completion_tokens": 3, "total_tokens": 15},
            )

        result = await _generator(handler).generate_structured(
            MESSAGES, BranchSummary, temperature=0.1, schema_name="BranchSummary"
        )

        assert result.data == BranchSummary(summary="ok", key_decisions=["a"])
        assert result.provider == "openai"
        assert result.model == "test-model-2026"
        assert result.usage.total_tokens == 15

        request = requests[0]
        assert request.url == "https://api.example.test/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        payload = json.loads(request.content)
        assert payload["model"] == "test-model"
        assert payload["temperature"] == 0.1
        assert payload["response_format"] == {"type": "json_object"}
        # JSON instructions are merged into the existing system message
        assert len(payload["messages"]) == 2
        assert payload["messages"][0]["content"].startswith("You summarize conversations.")
        assert "Output type: BranchSummary" in payload["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_retries_with_validation_feedback(self):
        payloads = []
        answers = iter(['{"wrong": true}', '{"summary": "fixed"}'])

        def handler(request: httpx.Request) -> httpx.Response:
            payloads.append(json.loads(request.content))
            return _completion(next(answers))

        result = await _generator(handler).generate_structured(MESSAGES, BranchSummary)

        assert result.data.summary == "fixed"
        assert len(payloads) == 2
        retry_messages = payloads[1]["messages"]
        assert retry_messages[-2] == {"role": "assistant", "content": '{"wrong": true}'}
        assert "summary: Field required" in retry_messages[-1]["content"]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return _completion("not json at all")

        with pytest.raises(StructuredOutputError) as exc_info:
            await _generator(handler, max_retries=2).generate_structured(MESSAGES, BranchSummary)

        assert len(calls) == 2
        assert exc_info.value.raw_output == "not json at all"
        assert exc_info.value.provider == "openai"

    @pytest.mark.asyncio
    async def test_http_error_becomes_generation_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="upstream exploded")

        with pytest.raises(GenerationError) as exc_info:
            await _generator(handler).generate_structured(MESSAGES, BranchSummary)

        assert exc_info.value.status_code == 500
        assert exc_info.value.code == "API_ERROR"

    @pytest.mark.asyncio
    async def test_transport_error_becomes_generation_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(GenerationError) as exc_info:
            await _generator(handler).generate_structured(MESSAGES, BranchSummary)

        assert exc_info.value.code == "TRANSPORT_ERROR"

    @pytest.mark.asyncio
    async def test_prepends_system_message_when_missing(self):
        payloads = []

        def handler(request: httpx.Request) -> httpx.Response:
            payloads.append(json.loads(request.content))
            return _completion('{"summary": "ok"}')

        await _generator(handler).generate_structured(
            [ChatMessage(role="user", content="hi")], BranchSummary
        )

        messages = payloads[0]["messages"]
        assert messages[0]["role"] == "system"
        assert messages[0]["content"].startswith("You must respond with valid JSON only.")
        assert messages[1] == {"role": "user", "content": "hi"}
