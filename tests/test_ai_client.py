"""Tests for the Claude adapter: message building, error mapping, fallbacks.

Run:
    uv run pytest tests/test_ai_client.py -v
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from sidebot_bridge.analysis.ai_client import (
    AIClient,
    ImageContent,
    TextContent,
    build_messages,
    classify_error,
    render_context,
    text_node_index,
)
from sidebot_bridge.errors import ErrorCode

_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")

SNAPSHOT = {
    "rootNames": ["Checkout"],
    "nodes": [
        {"id": "1:1", "type": "FRAME", "name": "Checkout", "children": [
            {"id": "1:2", "type": "TEXT", "characters": "Pay now"},
            {"id": "1:3", "type": "TEXT", "characters": "Recieve receipt"},
        ]},
        {"id": "1:4", "type": "RECTANGLE", "fills": [{"type": "SOLID"}]},
    ],
}


def _status_error(cls, status: int):
    return cls("boom", response=httpx.Response(status, request=_REQUEST), body=None)


def _fake_model(response=None, side_effect=None):
    model = MagicMock()
    model.ainvoke = AsyncMock(return_value=response, side_effect=side_effect)
    return model


# ---------------------------------------------------------------------------
# 1. Context rendering
# ---------------------------------------------------------------------------


class TestContextRendering:
    def test_text_node_index_walks_nested_children(self):
        assert text_node_index(SNAPSHOT) == {"1:2": "Pay now", "1:3": "Recieve receipt"}

    def test_full_dump_without_image(self):
        block = render_context(SNAPSHOT, with_image=False)
        assert block.startswith("Current design context (JSON):")
        assert '"RECTANGLE"' in block

    def test_index_only_with_image(self):
        block = render_context(SNAPSHOT, with_image=True)
        assert '- 1:2: "Pay now"' in block
        assert "RECTANGLE" not in block
        assert "fills" not in block

    def test_no_context(self):
        assert render_context(None, with_image=False) == ""


# ---------------------------------------------------------------------------
# 2. Message building
# ---------------------------------------------------------------------------


class TestBuildMessages:
    def test_system_history_and_user_text(self):
        history = [
            {"role": "user", "content": "hello"},
            {"role": "assistant", "content": "hi there"},
            {"role": "system", "content": "ignored"},
            {"role": "user", "content": ""},
        ]
        msgs = build_messages(TextContent("check this"), history, system_prompt="SYS", context=SNAPSHOT)
        assert isinstance(msgs[0], SystemMessage)
        assert isinstance(msgs[1], HumanMessage) and msgs[1].content == "hello"
        assert isinstance(msgs[2], AIMessage) and msgs[2].content == "hi there"
        assert len(msgs) == 4
        assert msgs[-1].content.startswith("check this\n\nCurrent design context (JSON):")

    def test_image_message_has_image_block_and_compact_index(self):
        content = ImageContent(text="what's wrong?", image="data:image/jpeg;base64,QUJD")
        msgs = build_messages(content, context=SNAPSHOT)
        blocks = msgs[-1].content
        assert blocks[0] == {
            "type": "image",
            "source": {"type": "base64", "media_type": "image/jpeg", "data": "QUJD"},
        }
        assert blocks[1]["type"] == "text"
        assert "Current design context" not in blocks[1]["text"]
        assert '1:3: "Recieve receipt"' in blocks[1]["text"]

    def test_raw_base64_keeps_default_media_type(self):
        assert ImageContent(text="x", image="QUJD").split_image() == ("image/png", "QUJD")

    def test_history_is_capped(self):
        history = [{"role": "user", "content": f"m{i}"} for i in range(50)]
        msgs = build_messages(TextContent("now"), history)
        assert len(msgs) == 21
        assert msgs[0].content == "m30"


# ---------------------------------------------------------------------------
# 3. Error classification
# ---------------------------------------------------------------------------


class TestClassifyError:
    def test_timeout(self):
        assert classify_error(asyncio.TimeoutError()).code == ErrorCode.E_PROVIDER_TIMEOUT
        assert classify_error(anthropic.APITimeoutError(request=_REQUEST)).code == ErrorCode.E_PROVIDER_TIMEOUT

    def test_auth_is_not_recoverable(self):
        err = classify_error(_status_error(anthropic.AuthenticationError, 401))
        assert err.code == ErrorCode.E_AUTH_FAILED
        assert err.recoverable is False

    def test_rate_limit(self):
        assert classify_error(_status_error(anthropic.RateLimitError, 429)).code == ErrorCode.E_RATE_LIMITED

    def test_anything_else(self):
        err = classify_error(RuntimeError("socket closed"))
        assert err.code == ErrorCode.E_PROVIDER_FAILED
        assert "socket closed" in err.message


# ---------------------------------------------------------------------------
# 4. complete()
# ---------------------------------------------------------------------------


class TestComplete:
    @pytest.mark.asyncio
    async def test_returns_text_and_usage(self):
        response = AIMessage(
            content="All good.",
            usage_metadata={"input_tokens": 10, "output_tokens": 3, "total_tokens": 13},
        )
        model = _fake_model(response=response)
        factory = MagicMock(return_value=model)
        client = AIClient(model_factory=factory)

        completion = await client.complete("sk-ant-test", TextContent("hi"), max_tokens=512)

        assert completion.ok
        assert completion.text == "All good."
        assert completion.usage["output_tokens"] == 3
        factory.assert_called_once_with("sk-ant-test", 512)

    @pytest.mark.asyncio
    async def test_list_content_is_joined(self):
        response = AIMessage(content=[{"type": "text", "text": "a"}, {"type": "text", "text": "b"}])
        client = AIClient(model_factory=lambda key, n: _fake_model(response=response))
        completion = await client.complete("sk-ant-test", TextContent("hi"))
        assert completion.text == "ab"

    @pytest.mark.asyncio
    async def test_provider_error_becomes_fallback(self):
        model = _fake_model(side_effect=_status_error(anthropic.RateLimitError, 429))
        client = AIClient(model_factory=lambda key, n: model)

        completion = await client.complete("sk-ant-test", TextContent("hi"))

        assert not completion.ok
        assert completion.error.code == ErrorCode.E_RATE_LIMITED
        item = completion.diagnostic("contrast")
        assert item["code"] == "E_RATE_LIMITED"
        assert item["action"] == "contrast"

    @pytest.mark.asyncio
    async def test_slow_model_times_out(self):
        async def never_returns(_messages):
            await asyncio.sleep(10)

        model = MagicMock()
        model.ainvoke = never_returns
        client = AIClient(timeout=0.05, model_factory=lambda key, n: model)

        completion = await client.complete("sk-ant-test", TextContent("hi"))

        assert completion.error.code == ErrorCode.E_PROVIDER_TIMEOUT

    @pytest.mark.asyncio
    async def test_models_are_reused_per_key(self):
        response = AIMessage(content="ok")
        factory = MagicMock(side_effect=lambda key, n: _fake_model(response=response))
        client = AIClient(model_factory=factory)

        await client.complete("sk-ant-one", TextContent("a"))
        await client.complete("sk-ant-one", TextContent("b"))
        await client.complete("sk-ant-two", TextContent("c"))

        assert factory.call_count == 2
