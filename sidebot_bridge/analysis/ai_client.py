"""Claude adapter — one request in, raw text plus usage out.

Builds the LangChain message list (system prompt, prior turns, the user's
text with an optional screenshot, and the current design context), calls
``ChatAnthropic`` under a deadline and maps every failure to a ``Completion``
that carries a ``BridgeError`` instead of raising. The router always gets
something it can turn into a reply for the plugin.

Whether a key is configured is the caller's check; this module only uses the
key it is handed.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Union

import anthropic
from langchain_anthropic import ChatAnthropic
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from sidebot_bridge.constants import AI_CALL_TIMEOUT, CHAT_HISTORY_LIMIT, CHAT_MAX_TOKENS, DEFAULT_MODEL
from sidebot_bridge.errors import BridgeError, ErrorCode, diagnostic_fix
from sidebot_bridge.telemetry import get_tracer

logger = logging.getLogger(__name__)
tracer = get_tracer()

_MAX_INDEXED_TEXT_NODES = 300
_MAX_INDEXED_TEXT_LEN = 200


# ---------------------------------------------------------------------------
# Request / response types
# ---------------------------------------------------------------------------


@dataclass
class TextContent:
    text: str


@dataclass
class ImageContent:
    """User text plus a base64 screenshot (raw base64 or a ``data:`` URL)."""

    text: str
    image: str
    media_type: str = "image/png"

    def split_image(self) -> tuple[str, str]:
        """Return ``(media_type, base64_data)`` with any data-URL prefix removed."""
        data = self.image
        media_type = self.media_type
        if data.startswith("data:") and "," in data:
            header, data = data.split(",", 1)
            declared = header[len("data:"):].split(";", 1)[0]
            if declared:
                media_type = declared
        return media_type, data


UserContent = Union[TextContent, ImageContent]


@dataclass
class Completion:
    text: str
    usage: dict[str, int] = field(default_factory=dict)
    error: BridgeError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def diagnostic(self, action: str | None = None) -> dict[str, Any]:
        """The single synthetic fix item standing in for a failed call."""
        error = self.error or BridgeError(code=ErrorCode.E_PROVIDER_FAILED, message=self.text)
        return diagnostic_fix(error.code, error.message, action)


# ---------------------------------------------------------------------------
# Context rendering
# ---------------------------------------------------------------------------


def text_node_index(context: Any) -> dict[str, str]:
    """Collect ``node id → characters`` for every text node in *context*."""
    index: dict[str, str] = {}
    stack = [context]
    while stack and len(index) < _MAX_INDEXED_TEXT_NODES:
        node = stack.pop()
        if isinstance(node, dict):
            node_id, chars = node.get("id"), node.get("characters")
            if isinstance(node_id, str) and isinstance(chars, str) and chars:
                index[node_id] = chars[:_MAX_INDEXED_TEXT_LEN]
            stack.extend(reversed([v for v in node.values() if isinstance(v, (dict, list))]))
        elif isinstance(node, list):
            stack.extend(reversed(node))
    return index


def render_context(context: Any, with_image: bool) -> str:
    """Text block appended to the user's message for *context*.

    With a screenshot attached only the text-node index is sent; the image
    already shows the layout and a full dump can run to megabytes.
    """
    if context is None:
        return ""
    if with_image:
        index = text_node_index(context)
        if not index:
            return ""
        lines = [f'- {node_id}: "{chars}"' for node_id, chars in index.items()]
        return "Text nodes you can reference by id:\n" + "\n".join(lines)
    return "Current design context (JSON):\n" + json.dumps(context, ensure_ascii=False, default=str)


def build_messages(
    user_content: UserContent,
    history: Iterable[dict[str, Any]] = (),
    system_prompt: str | None = None,
    context: Any = None,
) -> list[BaseMessage]:
    """Assemble the LangChain message list for one Claude call."""
    messages: list[BaseMessage] = []
    if system_prompt:
        messages.append(SystemMessage(content=system_prompt))

    turns = [
        t for t in history
        if isinstance(t, dict) and t.get("role") in ("user", "assistant") and isinstance(t.get("content"), str)
        and t["content"].strip()
    ]
    for turn in turns[-CHAT_HISTORY_LIMIT:]:
        if turn["role"] == "user":
            messages.append(HumanMessage(content=turn["content"]))
        else:
            messages.append(AIMessage(content=turn["content"]))

    with_image = isinstance(user_content, ImageContent)
    context_block = render_context(context, with_image=with_image)
    text = f"{user_content.text}\n\n{context_block}" if context_block else user_content.text

    if with_image:
        media_type, data = user_content.split_image()
        messages.append(HumanMessage(content=[
            {"type": "image", "source": {"type": "base64", "media_type": media_type, "data": data}},
            {"type": "text", "text": text},
        ]))
    else:
        messages.append(HumanMessage(content=text))
    return messages


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------


def classify_error(exc: BaseException) -> BridgeError:
    """Map a provider/network exception to a ``BridgeError``."""
    if isinstance(exc, (asyncio.TimeoutError, anthropic.APITimeoutError)):
        return BridgeError(ErrorCode.E_PROVIDER_TIMEOUT, "Claude took too long to respond. Please try again.")
    if isinstance(exc, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
        return BridgeError(
            ErrorCode.E_AUTH_FAILED,
            "Anthropic rejected the API key. Check the key in the plugin settings.",
            recoverable=False,
        )
    status = getattr(exc, "status_code", None)
    if isinstance(exc, anthropic.RateLimitError) or status in (429, 529):
        return BridgeError(ErrorCode.E_RATE_LIMITED, "Claude is busy right now (rate limited). Please retry shortly.")
    if isinstance(exc, anthropic.APIConnectionError):
        return BridgeError(ErrorCode.E_PROVIDER_FAILED, f"Could not reach Anthropic: {exc}")
    return BridgeError(ErrorCode.E_PROVIDER_FAILED, f"Claude request failed: {exc}")


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


ModelFactory = Callable[[str, int], BaseChatModel]


class AIClient:
    """Thin async wrapper around ``ChatAnthropic``."""

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        timeout: float = AI_CALL_TIMEOUT,
        model_factory: ModelFactory | None = None,
    ) -> None:
        self.model = model
        self.timeout = timeout
        self._model_factory = model_factory or self._chat_anthropic
        self._models: dict[tuple[str, int], BaseChatModel] = {}

    def _chat_anthropic(self, api_key: str, max_tokens: int) -> BaseChatModel:
        return ChatAnthropic(
            model=self.model,
            api_key=api_key,
            max_tokens=max_tokens,
            temperature=0,
            max_retries=2,
            timeout=self.timeout,
        )

    def _get_model(self, api_key: str, max_tokens: int) -> BaseChatModel:
        """Lazily create one model per (key, max_tokens); a new key drops the old ones."""
        cache_key = (api_key, max_tokens)
        model = self._models.get(cache_key)
        if model is None:
            if any(k != api_key for k, _ in self._models):
                self._models.clear()
            model = self._model_factory(api_key, max_tokens)
            self._models[cache_key] = model
        return model

    async def complete(
        self,
        api_key: str,
        user_content: UserContent,
        history: Iterable[dict[str, Any]] = (),
        system_prompt: str | None = None,
        context: Any = None,
        max_tokens: int = CHAT_MAX_TOKENS,
    ) -> Completion:
        """Send one request to Claude; never raises for provider failures."""
        messages = build_messages(user_content, history, system_prompt, context)
        with tracer.start_as_current_span(
            "sidebot.ai.complete",
            attributes={
                "ai.model": self.model,
                "ai.messages": len(messages),
                "ai.image": isinstance(user_content, ImageContent),
            },
        ) as span:
            try:
                model = self._get_model(api_key, max_tokens)
                response = await asyncio.wait_for(model.ainvoke(messages), timeout=self.timeout)
            except Exception as exc:
                error = classify_error(exc)
                span.set_attribute("ai.error", error.code)
                logger.error("[AI] %s: %s", error.code, exc)
                return Completion(text=error.message, error=error)

            text = _response_text(response)
            usage = dict(getattr(response, "usage_metadata", None) or {})
            span.set_attribute("ai.output_tokens", int(usage.get("output_tokens", 0)))
            logger.info("[AI] Response %d chars, usage=%s", len(text), usage)
            return Completion(text=text, usage=usage)


def _response_text(response: Any) -> str:
    content = getattr(response, "content", response)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [
            block.get("text", "") if isinstance(block, dict) else str(block)
            for block in content
            if not isinstance(block, dict) or block.get("type") == "text"
        ]
        return "".join(parts)
    return str(content)
