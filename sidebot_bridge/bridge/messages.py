"""Wire messages exchanged with the Figma plugin.

Inbound messages are decoded once, at the socket boundary, into a closed
union of pydantic models discriminated on ``type``. Outbound messages are
plain dicts built by the helpers at the bottom of this module; every one of
them carries a ``type``.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


# ---------------------------------------------------------------------------
# Decode errors
# ---------------------------------------------------------------------------


class MessageDecodeError(Exception):
    """Base class for inbound messages that cannot be dispatched."""


class MalformedMessage(MessageDecodeError):
    """Not JSON, or not a JSON object with a string ``type``."""


class UnknownMessageType(MessageDecodeError):
    def __init__(self, message_type: str) -> None:
        super().__init__(f"Unknown message type: {message_type}")
        self.message_type = message_type


class InvalidMessage(MessageDecodeError):
    """Known ``type`` whose fields fail validation."""

    def __init__(self, message_type: str, errors: list[dict[str, Any]]) -> None:
        fields = ", ".join(".".join(str(p) for p in e.get("loc", ())[1:]) or "?" for e in errors)
        super().__init__(f"Invalid {message_type} message: {fields}")
        self.message_type = message_type
        self.errors = errors


# ---------------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------------


class _Inbound(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class StateUpdate(_Inbound):
    type: Literal["state-update"]
    projects: Optional[list[dict[str, Any]]] = None
    active_project: Optional[dict[str, Any]] = Field(default=None, alias="activeProject")


class DesignData(_Inbound):
    type: Literal["design-data"]
    data: dict[str, Any]
    action_override: Optional[str] = Field(default=None, alias="action")

    @property
    def action(self) -> str | None:
        """Analysis to run; ``data.action`` unless the envelope names one."""
        action = self.action_override or self.data.get("action")
        return action if isinstance(action, str) and action else None


class ChatMessage(_Inbound):
    type: Literal["chat-message"]
    text: str
    history: list[dict[str, Any]] = Field(default_factory=list)
    design_data: Any = Field(default=None, alias="designData")
    screenshot: Optional[str] = None


class SetApiKey(_Inbound):
    type: Literal["set-api-key"]
    key: str


class AuditResult(_Inbound):
    type: Literal["audit-result"]
    result: Any = None


InboundMessage = Annotated[
    Union[StateUpdate, DesignData, ChatMessage, SetApiKey, AuditResult],
    Field(discriminator="type"),
]

_inbound_adapter: TypeAdapter[InboundMessage] = TypeAdapter(InboundMessage)

INBOUND_TYPES = frozenset({"state-update", "design-data", "chat-message", "set-api-key", "audit-result"})


def decode(raw: str | bytes) -> InboundMessage:
    """Parse one socket frame into an inbound message model."""
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedMessage(f"Not JSON: {exc}") from exc
    if not isinstance(payload, dict) or not isinstance(payload.get("type"), str):
        raise MalformedMessage("Message is not an object with a string 'type'")

    message_type = payload["type"]
    if message_type not in INBOUND_TYPES:
        raise UnknownMessageType(message_type)
    try:
        return _inbound_adapter.validate_python(payload)
    except ValidationError as exc:
        raise InvalidMessage(message_type, exc.errors()) from exc


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------


def connection_established(has_api_key: bool) -> dict[str, Any]:
    return {"type": "connection-established", "message": "Bridge connected!", "hasApiKey": has_api_key}


def api_key_confirmed(success: bool, error: str | None = None) -> dict[str, Any]:
    msg: dict[str, Any] = {"type": "api-key-confirmed", "success": success}
    if error:
        msg["error"] = error
    return msg


def chat_response(text: str, fixes: list[Any]) -> dict[str, Any]:
    return {"type": "chat-response", "text": text, "fixes": fixes}


def add_fixes(fixes: list[Any], project_name: str | None = None, action: str | None = None) -> dict[str, Any]:
    msg: dict[str, Any] = {"type": "add-fixes-from-claude", "fixes": fixes}
    if project_name:
        msg["projectName"] = project_name
    if action:
        msg["action"] = action
    return msg


def add_edge_cases(cases: list[str], frame_name: str) -> dict[str, Any]:
    return {"type": "add-edge-cases-from-claude", "cases": cases, "frameName": frame_name}


def add_goals(project_name: str, goals: list[Any], **extra: Any) -> dict[str, Any]:
    msg: dict[str, Any] = {"type": "add-goals-from-claude", "projectName": project_name, "goals": goals}
    msg.update({k: v for k, v in extra.items() if v is not None})
    return msg
