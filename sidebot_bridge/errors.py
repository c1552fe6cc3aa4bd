"""BridgeError envelope — structured error reporting to the Figma plugin.

Every error sent to the plugin follows a consistent JSON shape so the plugin
UI can render a notice, and every analysis failure is turned into a single
diagnostic fix so the plugin never waits on a reply that will not come.

Error codes
-----------
E_NO_API_KEY        No Anthropic key configured yet.
E_INVALID_KEY       Key rejected by the prefix check.
E_INVALID_MESSAGE   Inbound message with a known type but bad fields.
E_AUTH_FAILED       Anthropic rejected the key (401/403).
E_RATE_LIMITED      Anthropic returned 429 / overloaded.
E_PROVIDER_TIMEOUT  The model call exceeded its deadline.
E_PROVIDER_FAILED   Any other upstream failure.
E_PLUGIN_NOT_CONNECTED  Command surface write with no plugin attached.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sidebot_bridge.bridge.registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class ErrorCode(str, enum.Enum):
    E_NO_API_KEY = "E_NO_API_KEY"
    E_INVALID_KEY = "E_INVALID_KEY"
    E_INVALID_MESSAGE = "E_INVALID_MESSAGE"
    E_AUTH_FAILED = "E_AUTH_FAILED"
    E_RATE_LIMITED = "E_RATE_LIMITED"
    E_PROVIDER_TIMEOUT = "E_PROVIDER_TIMEOUT"
    E_PROVIDER_FAILED = "E_PROVIDER_FAILED"
    E_PLUGIN_NOT_CONNECTED = "E_PLUGIN_NOT_CONNECTED"


NO_API_KEY_MESSAGE = (
    "No API key configured. Add your Anthropic API key in the plugin settings "
    "to enable analysis."
)


class PluginNotConnected(Exception):
    """Raised by the command surface when no plugin socket is attached."""

    code = ErrorCode.E_PLUGIN_NOT_CONNECTED

    def __init__(self, message: str = "Plugin not connected") -> None:
        super().__init__(message)
        self.message = message


@dataclass
class BridgeError:
    code: str
    message: str
    recoverable: bool = True
    details: dict[str, Any] | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "type": "error",
            "code": self.code,
            "message": self.message,
            "recoverable": self.recoverable,
        }
        if self.details:
            d["details"] = self.details
        return d


def diagnostic_fix(code: str, message: str, action: str | None = None) -> dict[str, Any]:
    """Build the single synthetic fix item that stands in for a failed analysis."""
    code_value = code.value if isinstance(code, ErrorCode) else str(code)
    item: dict[str, Any] = {
        "title": "No API key configured" if code_value == ErrorCode.E_NO_API_KEY.value else "Analysis unavailable",
        "description": message,
        "severity": "high",
        "category": "system",
        "nodeId": None,
        "code": code_value,
    }
    if action:
        item["action"] = action
    return item


async def send_error(registry: "ConnectionRegistry", error: BridgeError) -> None:
    """Serialize *error* and send it to the attached plugin.

    Never raises; a detached registry simply drops the message.
    """
    try:
        delivered = await registry.send(error.to_dict())
    except Exception as exc:
        logger.debug("[BridgeError] Failed to send error to plugin: %s", exc)
        return
    if delivered:
        logger.warning("[BridgeError] Sent %s to plugin: %s", error.code, error.message)
    else:
        logger.debug("[BridgeError] Plugin detached, dropped %s", error.code)
