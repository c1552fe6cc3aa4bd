"""Anthropic API key storage.

The key lives in ``config.json`` under the per-user config directory, at the
same place a desktop app keeps its settings:

  Windows  : %APPDATA%\\com.sidebot.bridge\\config.json
  macOS    : ~/Library/Application Support/com.sidebot.bridge/config.json
  Linux    : ~/.config/com.sidebot.bridge/config.json

The file is read once at startup and rewritten atomically whenever the plugin
sends a new key. A malformed file or a key that fails the prefix check is
logged and ignored; the bridge then starts without a key.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
import tempfile
from pathlib import Path

from sidebot_bridge.constants import API_KEY_ENV, API_KEY_PREFIX, CONFIG_APP_ID, CONFIG_FILE_NAME

logger = logging.getLogger(__name__)

_KEY_FIELD = "anthropic_api_key"


def default_config_path() -> Path:
    """Return the platform config path for the credential record."""
    # Assign to a plain `str` so type checkers don't narrow to a platform literal.
    platform: str = sys.platform
    if platform == "win32":
        appdata = os.environ.get("APPDATA", "")
        base = Path(appdata) if appdata else Path.home() / "AppData" / "Roaming"
    elif platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        xdg = os.environ.get("XDG_CONFIG_HOME", "")
        base = Path(xdg) if xdg else Path.home() / ".config"
    return base / CONFIG_APP_ID / CONFIG_FILE_NAME


def validate_api_key(key: str) -> str | None:
    """Return a human-readable reason if *key* is unusable, else ``None``."""
    if not key:
        return "API key is empty"
    if not key.startswith(API_KEY_PREFIX):
        return f"Invalid API key format (expected a key starting with '{API_KEY_PREFIX}')"
    if len(key) <= len(API_KEY_PREFIX):
        return "API key is too short"
    return None


class CredentialStore:
    """Holds the single API key and persists it to ``path``."""

    def __init__(self, path: Path | str | None = None) -> None:
        self.path = Path(path) if path else default_config_path()
        self._key: str | None = None

    @property
    def api_key(self) -> str | None:
        return self._key

    def has_key(self) -> bool:
        return self._key is not None

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def load(self, env_fallback: bool = True) -> None:
        """Read the persisted key; fall back to ``ANTHROPIC_API_KEY`` if none."""
        key = self._read_file()
        if key is None and env_fallback:
            env_key = os.environ.get(API_KEY_ENV, "").strip()
            if env_key:
                reason = validate_api_key(env_key)
                if reason:
                    logger.warning("[Credentials] Ignoring %s from environment: %s", API_KEY_ENV, reason)
                else:
                    key = env_key
                    logger.info("[Credentials] Using %s from environment.", API_KEY_ENV)
        self._key = key

    def _read_file(self) -> str | None:
        if not self.path.exists():
            logger.debug("[Credentials] No config at %s", self.path)
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("[Credentials] Failed to parse %s: %s", self.path, exc)
            return None
        key = data.get(_KEY_FIELD) if isinstance(data, dict) else None
        if not isinstance(key, str):
            logger.warning("[Credentials] %s has no '%s' entry — ignoring.", self.path, _KEY_FIELD)
            return None
        reason = validate_api_key(key)
        if reason:
            logger.warning("[Credentials] Stored key rejected: %s", reason)
            return None
        logger.info("[Credentials] Loaded API key from %s", self.path)
        return key

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    async def set_key(self, key: str) -> str | None:
        """Validate and persist *key*.

        Returns ``None`` on success or the rejection reason. On any failure
        the previously stored key is left untouched.
        """
        key = (key or "").strip()
        reason = validate_api_key(key)
        if reason:
            logger.warning("[Credentials] Rejected key: %s", reason)
            return reason
        try:
            await asyncio.to_thread(self._write_file, key)
        except OSError as exc:
            logger.error("[Credentials] Failed to persist key to %s: %s", self.path, exc)
            return f"Could not save API key: {exc}"
        self._key = key
        logger.info("[Credentials] API key saved to %s", self.path)
        return None

    def _write_file(self, key: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".config-", suffix=".tmp", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump({_KEY_FIELD: key}, fh)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
