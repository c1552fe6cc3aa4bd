"""Command surface — HTTP endpoints Claude Desktop uses to talk to the plugin.

Routes (mounted on the main FastAPI app):
  GET  /state        — full BridgeState
  GET  /design-data  — last design snapshot (404 when none yet)
  POST /add-goals    — push goals into a plugin project
  POST /add-fixes    — push fixes into a plugin project

Writes go straight to the plugin socket. With no plugin attached they fail
with 503 ``Plugin not connected``; nothing is queued or retried here.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from sidebot_bridge.bridge import messages
from sidebot_bridge.bridge.context import BridgeContext
from sidebot_bridge.errors import PluginNotConnected

logger = logging.getLogger(__name__)

router = APIRouter(tags=["commands"])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class GoalsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    project_name: str = Field(alias="projectName")
    goals: list[Any]
    prd_text: Optional[str] = Field(default=None, alias="prdText")
    notion_page_id: Optional[str] = Field(default=None, alias="notionPageId")
    notion_title: Optional[str] = Field(default=None, alias="notionTitle")
    categories: Optional[list[Any]] = None


class FixesRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    project_name: str = Field(alias="projectName")
    fixes: list[Any]


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


class CommandSurface:
    """Reads bridge state and forwards goal/fix pushes to the plugin."""

    def __init__(self, ctx: BridgeContext) -> None:
        self.ctx = ctx

    def current_state(self) -> dict[str, Any]:
        return self.ctx.state.to_dict()

    def last_snapshot(self) -> dict[str, Any] | None:
        return self.ctx.state.last_design_snapshot

    async def submit_goals(self, project_name: str, goals: list[Any], prd_text: str | None = None, **extra: Any) -> int:
        message = messages.add_goals(project_name, goals, prdText=prd_text, **extra)
        await self._forward(message)
        logger.info("[Commands] Goals → %s (%d)", project_name, len(goals))
        return len(goals)

    async def submit_fixes(self, project_name: str, fixes: list[Any]) -> int:
        await self._forward(messages.add_fixes(fixes, project_name=project_name))
        logger.info("[Commands] Fixes → %s (%d)", project_name, len(fixes))
        return len(fixes)

    async def _forward(self, message: dict[str, Any]) -> None:
        if not self.ctx.registry.is_connected():
            raise PluginNotConnected()
        if not await self.ctx.registry.send(message):
            raise PluginNotConnected()


def _surface(request: Request) -> CommandSurface:
    return request.app.state.commands


def _unavailable(exc: PluginNotConnected) -> JSONResponse:
    return JSONResponse(status_code=503, content={"error": exc.message, "code": exc.code.value})


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/state")
async def get_state(request: Request) -> dict[str, Any]:
    return _surface(request).current_state()


@router.get("/design-data")
async def get_design_data(request: Request) -> Any:
    snapshot = _surface(request).last_snapshot()
    if snapshot is None:
        return JSONResponse(status_code=404, content={"error": "No design data"})
    return snapshot


@router.post("/add-goals")
async def add_goals(body: GoalsRequest, request: Request) -> Any:
    try:
        count = await _surface(request).submit_goals(
            body.project_name,
            body.goals,
            prd_text=body.prd_text,
            notionPageId=body.notion_page_id,
            notionTitle=body.notion_title,
            categories=body.categories,
        )
    except PluginNotConnected as exc:
        return _unavailable(exc)
    return {"success": True, "message": f"Sent {count} goals to plugin"}


@router.post("/add-fixes")
async def add_fixes(body: FixesRequest, request: Request) -> Any:
    try:
        count = await _surface(request).submit_fixes(body.project_name, body.fixes)
    except PluginNotConnected as exc:
        return _unavailable(exc)
    return {"success": True, "message": f"Sent {count} fixes to plugin"}
