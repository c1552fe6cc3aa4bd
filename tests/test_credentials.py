"""Tests for API key validation and persistence.

Run:
    uv run pytest tests/test_credentials.py -v
"""

import json

import pytest

from sidebot_bridge.credentials import CredentialStore, validate_api_key
from tests.conftest import VALID_KEY


@pytest.mark.parametrize(
    "key, ok",
    [
        (VALID_KEY, True),
        ("", False),
        ("sk-ant-", False),
        ("sk-openai-123", False),
    ],
)
def test_validate_api_key(key, ok):
    assert (validate_api_key(key) is None) is ok


@pytest.mark.asyncio
async def test_set_key_persists_and_reloads(tmp_path):
    path = tmp_path / "nested" / "config.json"
    store = CredentialStore(path)

    assert await store.set_key(f"  {VALID_KEY}\n") is None
    assert store.api_key == VALID_KEY
    assert json.loads(path.read_text()) == {"anthropic_api_key": VALID_KEY}

    reloaded = CredentialStore(path)
    reloaded.load()
    assert reloaded.api_key == VALID_KEY
    assert not list(path.parent.glob("*.tmp"))


@pytest.mark.asyncio
async def test_invalid_key_leaves_previous_key(tmp_path):
    store = CredentialStore(tmp_path / "config.json")
    await store.set_key(VALID_KEY)

    reason = await store.set_key("bad-key")

    assert reason is not None
    assert "sk-ant-" in reason
    assert store.api_key == VALID_KEY
    assert json.loads((tmp_path / "config.json").read_text())["anthropic_api_key"] == VALID_KEY


@pytest.mark.asyncio
async def test_unwritable_path_reports_failure(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    store = CredentialStore(blocker / "config.json")

    reason = await store.set_key(VALID_KEY)

    assert reason is not None
    assert store.has_key() is False


@pytest.mark.parametrize(
    "content",
    ["{not json", "[]", '{"other": 1}', '{"anthropic_api_key": "wrong-prefix"}'],
)
def test_bad_config_file_is_ignored(tmp_path, content):
    path = tmp_path / "config.json"
    path.write_text(content)
    store = CredentialStore(path)
    store.load()
    assert store.has_key() is False


def test_env_fallback_only_when_nothing_persisted(tmp_path, monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-from-env")
    store = CredentialStore(tmp_path / "config.json")
    store.load()
    assert store.api_key == "sk-ant-from-env"

    (tmp_path / "config.json").write_text(json.dumps({"anthropic_api_key": VALID_KEY}))
    store.load()
    assert store.api_key == VALID_KEY

    no_env = CredentialStore(tmp_path / "missing.json")
    no_env.load(env_fallback=False)
    assert no_env.has_key() is False
