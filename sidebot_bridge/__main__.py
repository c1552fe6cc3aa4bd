"""
Sidebot Bridge - Entry Point

Serves the bridge app on two ports from one process:
- HTTP port (default 3000): health, state and command surface for Claude Desktop
- WS port   (default 3001): the Figma plugin connection

Both ports are bound before anything starts; if either is taken the bridge
exits with status 1 instead of running half-initialised.
"""

import argparse
import asyncio
import logging
import socket
import sys
from dataclasses import replace

import uvicorn

from sidebot_bridge import __version__
from sidebot_bridge.config import Settings

logger = logging.getLogger("sidebot_bridge")


def _bind(host: str, port: int) -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    sock.set_inheritable(True)
    return sock


def _bind_all(settings: Settings) -> list[tuple[int, socket.socket]]:
    """Bind the HTTP and WS ports, or exit with a diagnostic if either is taken."""
    ports = [settings.http_port]
    if settings.ws_port != settings.http_port:
        ports.append(settings.ws_port)

    bound: list[tuple[int, socket.socket]] = []
    for port in ports:
        try:
            bound.append((port, _bind(settings.host, port)))
        except OSError as exc:
            logger.error("[Startup] Port %d unavailable (%s). Close the other bridge instance.", port, exc)
            for _, sock in bound:
                sock.close()
            sys.exit(1)
    return bound


async def _serve(settings: Settings, bound: list[tuple[int, socket.socket]]) -> None:
    from sidebot_bridge.main import create_app

    app = create_app(settings)
    log_level = settings.log_level.lower()

    # Lifespan (key loading, shutdown cleanup) runs once, on the HTTP server.
    servers = [
        uvicorn.Server(uvicorn.Config(
            app, host=settings.host, port=port, lifespan="on" if port == settings.http_port else "off", log_level=log_level,
        ))
        for port, _ in bound
    ]
    tasks = [asyncio.create_task(server.serve(sockets=[sock])) for server, (_, sock) in zip(servers, bound)]

    logger.info("[Startup] HTTP  →  http://%s:%d", settings.host, settings.http_port)
    logger.info("[Startup] WS    →  ws://%s:%d", settings.host, settings.ws_port)
    logger.info("[Startup] Waiting for Figma plugin…")

    _, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    for server in servers:
        server.should_exit = True
    await asyncio.gather(*pending, return_exceptions=True)
    logger.info("[Shutdown] Bridge stopped.")


def main():
    parser = argparse.ArgumentParser(
        description="Bridge between the Sidebot Figma plugin and Claude",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Default ports (HTTP 3000, WS 3001)
  sidebot-bridge

  # Custom ports
  sidebot-bridge --http-port 4000 --ws-port 4001

Environment: ANTHROPIC_API_KEY, ANTHROPIC_MODEL, BRIDGE_HOST, BRIDGE_HTTP_PORT,
BRIDGE_WS_PORT, SIDEBOT_CONFIG_DIR, LOG_LEVEL, OTEL_EXPORTER (.env is read too).
"""
    )
    env = Settings.from_env()
    parser.add_argument("--host", type=str, default=env.host, help=f"Host to bind (default: {env.host})")
    parser.add_argument("--http-port", type=int, default=env.http_port, help=f"Command surface port (default: {env.http_port})")
    parser.add_argument("--ws-port", type=int, default=env.ws_port, help=f"Plugin WebSocket port (default: {env.ws_port})")
    parser.add_argument("--log-level", type=str, default=env.log_level, help=f"Log level (default: {env.log_level})")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="[%(asctime)s] [bridge] [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )

    settings = replace(
        env,
        host=args.host,
        http_port=args.http_port,
        ws_port=args.ws_port,
        log_level=args.log_level.upper(),
    )

    bound = _bind_all(settings)
    try:
        asyncio.run(_serve(settings, bound))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
