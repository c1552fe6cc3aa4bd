"""Message router — decode plugin frames and dispatch them by type.

Decision table for inbound messages:

  state-update   replace projects / active project            no reply
  audit-result   store the plugin's last audit                no reply
  set-api-key    validate + persist the key                   api-key-confirmed
  chat-message   Claude chat turn (no key → canned reply)     chat-response
  design-data    store snapshot, then by ``action``:
                   edge-cases      → edge-case list           add-edge-cases-from-claude
                   catalog action  → fixes tagged with action add-fixes-from-claude
                   none / unknown  → nothing

The action name is the only dispatch key; without an explicit, known action
no analysis fires. Claude calls run on the ``ReplyTaskQueue`` so the receive
loop is never blocked by the model.
"""

from __future__ import annotations

import logging
from typing import Any

from typing_extensions import assert_never

from sidebot_bridge.analysis import prompts
from sidebot_bridge.analysis.ai_client import AIClient, ImageContent, TextContent, UserContent
from sidebot_bridge.analysis.extractor import ItemShape, extract
from sidebot_bridge.analysis.prompts import PromptTemplate
from sidebot_bridge.bridge import messages
from sidebot_bridge.bridge.background_worker import ReplyTaskQueue
from sidebot_bridge.bridge.context import BridgeContext
from sidebot_bridge.bridge.messages import (
    AuditResult,
    ChatMessage,
    DesignData,
    InboundMessage,
    InvalidMessage,
    MalformedMessage,
    SetApiKey,
    StateUpdate,
    UnknownMessageType,
)
from sidebot_bridge.bridge.registry import PluginSocket
from sidebot_bridge.constants import ANALYSIS_MAX_TOKENS, CHAT_MAX_TOKENS
from sidebot_bridge.errors import NO_API_KEY_MESSAGE, BridgeError, ErrorCode, diagnostic_fix, send_error
from sidebot_bridge.telemetry import get_tracer
from sidebot_bridge.utils import generate_job_id

logger = logging.getLogger(__name__)
tracer = get_tracer()

_DEFAULT_FRAME_NAME = "Selection"
_UNEXPECTED_FAILURE = "Something went wrong while talking to Claude. Please try again."


def plan_analysis(action: str | None) -> PromptTemplate | None:
    """Which template (if any) auto-fires for a ``design-data`` action."""
    template = prompts.lookup(action)
    if template is None and action:
        logger.info("[Router] Unknown analysis action '%s' — no auto-analysis.", action)
    return template


def frame_name_for(snapshot: dict[str, Any]) -> str:
    name = snapshot.get("frameName")
    if isinstance(name, str) and name:
        return name
    roots = snapshot.get("rootNames")
    if isinstance(roots, list) and roots and isinstance(roots[0], str) and roots[0]:
        return roots[0]
    return _DEFAULT_FRAME_NAME


def _user_content(text: str, screenshot: Any) -> UserContent:
    if isinstance(screenshot, str) and screenshot:
        return ImageContent(text=text, image=screenshot)
    return TextContent(text=text)


class MessageRouter:
    def __init__(self, ctx: BridgeContext, ai: AIClient, queue: ReplyTaskQueue | None = None) -> None:
        self.ctx = ctx
        self.ai = ai
        self.queue = queue or ReplyTaskQueue()

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def on_connect(self, socket: PluginSocket) -> None:
        self.ctx.registry.attach(socket)
        await self.ctx.registry.send(messages.connection_established(self.ctx.credentials.has_key()))

    def on_disconnect(self, socket: PluginSocket) -> None:
        self.ctx.registry.detach(socket)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def handle_raw(self, raw: str | bytes) -> None:
        """Decode one socket frame and dispatch it. Never raises."""
        try:
            msg = messages.decode(raw)
        except MalformedMessage as exc:
            logger.warning("[Router] Dropped malformed message: %s", exc)
            return
        except UnknownMessageType as exc:
            logger.info("[Router] Ignoring message type '%s'", exc.message_type)
            return
        except InvalidMessage as exc:
            logger.warning("[Router] %s", exc)
            await send_error(
                self.ctx.registry,
                BridgeError(
                    code=ErrorCode.E_INVALID_MESSAGE,
                    message=str(exc),
                    details={"messageType": exc.message_type},
                ),
            )
            return

        try:
            await self.dispatch(msg)
        except Exception as exc:
            logger.error("[Router] Handler for %s failed: %s", msg.type, exc, exc_info=True)

    async def dispatch(self, msg: InboundMessage) -> None:
        logger.info("[Router] ← %s", msg.type)
        with tracer.start_as_current_span("sidebot.router.dispatch", attributes={"message.type": msg.type}):
            if isinstance(msg, StateUpdate):
                self.ctx.state.replace_projects(msg.projects, msg.active_project)
            elif isinstance(msg, AuditResult):
                self.ctx.state.store_audit_result(msg.result)
            elif isinstance(msg, SetApiKey):
                await self._handle_set_api_key(msg)
            elif isinstance(msg, ChatMessage):
                await self._handle_chat(msg)
            elif isinstance(msg, DesignData):
                await self._handle_design_data(msg)
            else:
                assert_never(msg)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _handle_set_api_key(self, msg: SetApiKey) -> None:
        reason = await self.ctx.credentials.set_key(msg.key)
        await self.ctx.registry.send(messages.api_key_confirmed(reason is None, reason))

    async def _handle_chat(self, msg: ChatMessage) -> None:
        api_key = self.ctx.credentials.api_key
        if api_key is None:
            await self.ctx.registry.send(messages.chat_response(NO_API_KEY_MESSAGE, []))
            return

        async def _fallback(job_id: str, exc: BaseException) -> None:
            await self.ctx.registry.send(messages.chat_response(
                _UNEXPECTED_FAILURE,
                [diagnostic_fix(ErrorCode.E_PROVIDER_FAILED, str(exc))],
            ))

        self.queue.submit(generate_job_id("chat"), self._run_chat(api_key, msg), on_error=_fallback)

    async def _run_chat(self, api_key: str, msg: ChatMessage) -> None:
        completion = await self.ai.complete(
            api_key,
            _user_content(msg.text, msg.screenshot),
            history=msg.history,
            system_prompt=prompts.CHAT_SYSTEM_PROMPT,
            context=msg.design_data,
            max_tokens=CHAT_MAX_TOKENS,
        )
        if not completion.ok:
            await self.ctx.registry.send(messages.chat_response(completion.text, [completion.diagnostic()]))
            return

        result = extract(completion.text, shape=ItemShape.OBJECTS)
        text = result.clean_text
        if not text.strip() and result.items:
            text = f"I found {len(result.items)} item{'s' if len(result.items) != 1 else ''} to review."
        await self.ctx.registry.send(messages.chat_response(text, result.items))

    async def _handle_design_data(self, msg: DesignData) -> None:
        snapshot = msg.data
        self.ctx.state.store_snapshot(snapshot)
        logger.info("[Router] Design data stored: %s", frame_name_for(snapshot))

        template = plan_analysis(msg.action)
        if template is None:
            return

        api_key = self.ctx.credentials.api_key
        if api_key is None:
            item = diagnostic_fix(ErrorCode.E_NO_API_KEY, NO_API_KEY_MESSAGE, template.action)
            await self._send_analysis_failure(template, item, snapshot)
            return

        async def _fallback(job_id: str, exc: BaseException) -> None:
            item = diagnostic_fix(ErrorCode.E_PROVIDER_FAILED, f"{_UNEXPECTED_FAILURE} ({exc})", template.action)
            await self._send_analysis_failure(template, item, snapshot)

        self.queue.submit(
            generate_job_id(template.action),
            self._run_analysis(api_key, template, snapshot),
            on_error=_fallback,
        )

    async def _run_analysis(self, api_key: str, template: PromptTemplate, snapshot: dict[str, Any]) -> None:
        completion = await self.ai.complete(
            api_key,
            _user_content(template.render(), snapshot.get("screenshot")),
            system_prompt=prompts.ANALYSIS_SYSTEM_PROMPT,
            context={k: v for k, v in snapshot.items() if k not in ("screenshot", "action")},
            max_tokens=ANALYSIS_MAX_TOKENS,
        )
        if not completion.ok:
            await self._send_analysis_failure(template, completion.diagnostic(template.action), snapshot)
            return

        if template.shape is ItemShape.STRINGS:
            result = extract(completion.text, shape=ItemShape.STRINGS)
            await self.ctx.registry.send(messages.add_edge_cases(result.items, frame_name_for(snapshot)))
        else:
            result = extract(completion.text, shape=ItemShape.OBJECTS, action=template.action)
            await self.ctx.registry.send(messages.add_fixes(
                result.items,
                project_name=self.ctx.state.active_project_name(),
                action=template.action,
            ))
        logger.info("[Router] %s analysis → %d items (%s)", template.action, len(result.items), result.strategy or "none")

    async def _send_analysis_failure(self, template: PromptTemplate, item: dict[str, Any], snapshot: dict[str, Any]) -> None:
        """Reply with a single diagnostic in the shape the action expects."""
        if template.shape is ItemShape.STRINGS:
            await self.ctx.registry.send(messages.add_edge_cases([item["description"]], frame_name_for(snapshot)))
        else:
            await self.ctx.registry.send(messages.add_fixes(
                [item],
                project_name=self.ctx.state.active_project_name(),
                action=template.action,
            ))
