"""ConnectionRegistry — the one live plugin WebSocket.

A new ``attach`` replaces the previous socket without closing it; the old
socket's own disconnect then arrives as ``detach(old)`` and is ignored
because it no longer matches. ``send`` returns ``False`` instead of raising
when nothing is attached or the socket has gone away, so callers degrade
gracefully. A socket whose send fails is detached and closed; its receive
loop then ends and the plugin reconnects instead of talking to a bridge that
no longer answers it.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class PluginSocket(Protocol):
    async def send_json(self, data: Any) -> None: ...


async def _close_quietly(socket: PluginSocket) -> None:
    """Close a socket whose send failed so the plugin sees the drop and reconnects."""
    close = getattr(socket, "close", None)
    if close is None:
        return
    try:
        await close()
    except Exception as exc:
        logger.debug("[Registry] Close after failed send also failed: %s", exc)


class ConnectionRegistry:
    def __init__(self, on_change: Optional[Callable[[bool], None]] = None) -> None:
        self._socket: PluginSocket | None = None
        self._on_change = on_change

    @property
    def socket(self) -> PluginSocket | None:
        return self._socket

    def is_connected(self) -> bool:
        return self._socket is not None

    def attach(self, socket: PluginSocket) -> None:
        if self._socket is not None and self._socket is not socket:
            logger.info("[Registry] Replacing existing plugin connection.")
        self._socket = socket
        logger.info("[Registry] Plugin attached.")
        self._notify()

    def detach(self, socket: PluginSocket | None = None) -> bool:
        """Drop the current socket.

        With *socket* given, only detach if it is still the current one, so
        a stale close notification cannot evict its replacement.
        """
        if self._socket is None:
            return False
        if socket is not None and socket is not self._socket:
            logger.debug("[Registry] Ignoring detach of a replaced socket.")
            return False
        self._socket = None
        logger.info("[Registry] Plugin detached.")
        self._notify()
        return True

    async def send(self, message: dict[str, Any]) -> bool:
        """Send *message* as JSON on the current socket; ``False`` if not delivered."""
        if not isinstance(message.get("type"), str):
            logger.error("[Registry] Refusing to send message without a type: %s", list(message))
            return False
        socket = self._socket
        if socket is None:
            logger.debug("[Registry] No plugin attached — dropped %s", message.get("type"))
            return False
        try:
            await socket.send_json(message)
        except Exception as exc:
            logger.warning("[Registry] Send of %s failed: %s", message.get("type"), exc)
            self.detach(socket)
            await _close_quietly(socket)
            return False
        return True

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self.is_connected())
