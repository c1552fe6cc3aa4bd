"""FastAPI app — health check, command surface and the plugin WebSocket.

Data flow:
  1. The Figma plugin connects on the WS port and is attached to the registry.
  2. Each text frame is decoded and dispatched by ``MessageRouter``.
  3. Chat turns and design analyses call Claude on a background task; the
     extractor pulls fixes / edge cases out of the reply.
  4. Results go back to the plugin as typed JSON messages.
  5. Claude Desktop (via the HTTP command surface) reads state and pushes
     goals / fixes to the plugin through the same registry.

The same app is served on both the HTTP and the WS port; see ``__main__``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from sidebot_bridge import __version__
from sidebot_bridge.analysis.ai_client import AIClient
from sidebot_bridge.bridge.context import BridgeContext
from sidebot_bridge.bridge.router import MessageRouter
from sidebot_bridge.commands.routes import CommandSurface, router as commands_router
from sidebot_bridge.config import Settings
from sidebot_bridge.constants import CONFIG_FILE_NAME
from sidebot_bridge.credentials import CredentialStore
from sidebot_bridge.notion.routes import router as notion_router
from sidebot_bridge.telemetry import init_telemetry
from sidebot_bridge.utils import utc_timestamp

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Start tracing; drop the plugin and pending replies on shutdown."""
    settings: Settings = app.state.settings
    init_telemetry(settings.otel_exporter)

    ctx: BridgeContext = app.state.bridge
    logger.info(
        "[Startup] Bridge ready — API key %s, credentials at %s",
        "configured" if ctx.credentials.has_key() else "missing",
        ctx.credentials.path,
    )

    yield

    router: MessageRouter = app.state.router
    router.queue.cancel_all()
    socket = ctx.registry.socket
    if socket is not None and hasattr(socket, "close"):
        try:
            await socket.close()
        except Exception as exc:
            logger.debug("[Shutdown] Plugin socket close failed: %s", exc)
    ctx.registry.detach()


def create_app(
    settings: Settings | None = None,
    credentials: CredentialStore | None = None,
    ai_client: AIClient | None = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    if credentials is None:
        config_path = Path(settings.config_dir) / CONFIG_FILE_NAME if settings.config_dir else None
        credentials = CredentialStore(config_path)
        credentials.load()
    ctx = BridgeContext.create(credentials)
    ai_client = ai_client or AIClient(model=settings.model, timeout=settings.ai_timeout)

    app = FastAPI(title="Sidebot Bridge", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.bridge = ctx
    app.state.router = MessageRouter(ctx, ai_client)
    app.state.commands = CommandSurface(ctx)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.include_router(commands_router)
    app.include_router(notion_router)

    @app.get("/health")
    async def health() -> dict:
        state = ctx.state
        return {
            "status": "ok",
            "pluginConnected": state.connected,
            "activeProject": state.active_project_name() or "None",
            "hasApiKey": ctx.credentials.has_key(),
            "timestamp": utc_timestamp(),
        }

    app.add_api_websocket_route("/", plugin_stream)
    app.add_api_websocket_route("/ws", plugin_stream)
    return app


async def plugin_stream(websocket: WebSocket) -> None:
    """One Figma plugin connection: attach, relay frames, detach."""
    await websocket.accept()
    router: MessageRouter = websocket.app.state.router
    logger.info("[WS] Plugin connected from %s", websocket.client)
    await router.on_connect(websocket)

    try:
        while True:
            message = await websocket.receive()
            if message.get("type") == "websocket.disconnect":
                logger.info("[WS] Plugin disconnected (code=%s)", message.get("code"))
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")
            if raw is None:
                continue
            await router.handle_raw(raw)
    except WebSocketDisconnect:
        logger.info("[WS] Plugin disconnected")
    except RuntimeError as exc:
        # "Cannot call receive once a disconnect message has been received"
        logger.info("[WS] Plugin connection closed: %s", exc)
    finally:
        router.on_disconnect(websocket)
