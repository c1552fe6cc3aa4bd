"""Tests for the ConnectionRegistry.

Run:
    uv run pytest tests/test_registry.py -v
"""

import pytest

from sidebot_bridge.bridge.registry import ConnectionRegistry
from sidebot_bridge.bridge.state import BridgeState
from tests.conftest import FakeSocket


@pytest.mark.asyncio
async def test_send_without_socket_returns_false():
    registry = ConnectionRegistry()
    assert registry.is_connected() is False
    assert await registry.send({"type": "chat-response"}) is False


@pytest.mark.asyncio
async def test_newest_attach_wins():
    """attach(c1), attach(c2) → sends reach only c2."""
    registry = ConnectionRegistry()
    c1, c2 = FakeSocket(), FakeSocket()
    registry.attach(c1)
    registry.attach(c2)

    assert await registry.send({"type": "add-goals-from-claude"}) is True

    assert c1.sent == []
    assert c2.sent == [{"type": "add-goals-from-claude"}]


@pytest.mark.asyncio
async def test_stale_detach_does_not_evict_replacement():
    registry = ConnectionRegistry()
    c1, c2 = FakeSocket(), FakeSocket()
    registry.attach(c1)
    registry.attach(c2)

    assert registry.detach(c1) is False
    assert registry.socket is c2
    assert registry.detach(c2) is True
    assert registry.is_connected() is False
    assert await registry.send({"type": "chat-response"}) is False


@pytest.mark.asyncio
async def test_failing_send_detaches():
    """send_json raises → socket detached and closed so the plugin reconnects."""
    registry = ConnectionRegistry()
    sock = FakeSocket(fail=True)
    registry.attach(sock)

    assert await registry.send({"type": "chat-response"}) is False
    assert registry.is_connected() is False
    assert sock.closed is True


@pytest.mark.asyncio
async def test_close_failure_after_failed_send_is_contained():
    class BrokenSocket(FakeSocket):
        async def close(self):
            raise RuntimeError("already closed")

    registry = ConnectionRegistry()
    registry.attach(BrokenSocket(fail=True))

    assert await registry.send({"type": "chat-response"}) is False
    assert registry.is_connected() is False


@pytest.mark.asyncio
async def test_untyped_message_is_refused():
    registry = ConnectionRegistry()
    sock = FakeSocket()
    registry.attach(sock)

    assert await registry.send({"text": "hi"}) is False
    assert sock.sent == []


def test_on_change_tracks_connection_flag():
    state = BridgeState()
    registry = ConnectionRegistry(on_change=state.mark_connected)

    registry.attach(FakeSocket())
    assert state.connected is True
    registry.detach()
    assert state.connected is False
    # Detaching an empty registry is a no-op
    assert registry.detach() is False
