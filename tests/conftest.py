"""Shared fakes for bridge tests."""

from __future__ import annotations

from typing import Any

import pytest

from sidebot_bridge.analysis.ai_client import Completion
from sidebot_bridge.bridge.context import BridgeContext
from sidebot_bridge.credentials import CredentialStore

VALID_KEY = "sk-ant-test-0123456789"


class FakeSocket:
    """Records every JSON frame sent to the plugin."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: list[dict[str, Any]] = []
        self.fail = fail
        self.closed = False

    async def send_json(self, data: Any) -> None:
        if self.fail:
            raise RuntimeError("socket is gone")
        self.sent.append(data)

    async def close(self) -> None:
        self.closed = True

    def of_type(self, message_type: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m.get("type") == message_type]


class FakeAI:
    """Stands in for ``AIClient``: returns canned completions and records calls."""

    def __init__(self, text: str = "", error=None) -> None:
        self.completion = Completion(text=text, error=error)
        self.calls: list[dict[str, Any]] = []

    async def complete(self, api_key, user_content, **kwargs) -> Completion:
        self.calls.append({"api_key": api_key, "user_content": user_content, **kwargs})
        return self.completion


@pytest.fixture(autouse=True)
def _no_env_key(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)


@pytest.fixture
def credentials(tmp_path) -> CredentialStore:
    store = CredentialStore(tmp_path / "config.json")
    store.load()
    return store


@pytest.fixture
def ctx(credentials) -> BridgeContext:
    return BridgeContext.create(credentials)
