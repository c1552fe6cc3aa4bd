"""Runtime settings read from the environment (and ``.env`` via python-dotenv)."""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from sidebot_bridge.constants import (
    AI_CALL_TIMEOUT,
    DEFAULT_HOST,
    DEFAULT_HTTP_PORT,
    DEFAULT_MODEL,
    DEFAULT_WS_PORT,
)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    host: str = DEFAULT_HOST
    http_port: int = DEFAULT_HTTP_PORT
    ws_port: int = DEFAULT_WS_PORT
    model: str = DEFAULT_MODEL
    ai_timeout: float = AI_CALL_TIMEOUT
    config_dir: str = ""  # empty → platform default, see credentials.default_config_path
    log_level: str = "INFO"
    otel_exporter: str = "console"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            host=os.environ.get("BRIDGE_HOST", DEFAULT_HOST),
            http_port=_env_int("BRIDGE_HTTP_PORT", DEFAULT_HTTP_PORT),
            ws_port=_env_int("BRIDGE_WS_PORT", DEFAULT_WS_PORT),
            model=os.environ.get("ANTHROPIC_MODEL", DEFAULT_MODEL),
            ai_timeout=_env_float("ANTHROPIC_TIMEOUT", AI_CALL_TIMEOUT),
            config_dir=os.environ.get("SIDEBOT_CONFIG_DIR", ""),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            otel_exporter=os.environ.get("OTEL_EXPORTER", "console"),
        )
