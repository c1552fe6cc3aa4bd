"""Notion pass-through proxy.

The Figma plugin sandbox cannot always reach api.notion.com directly, so it
posts here and the bridge forwards the call with the caller's token. The
upstream status code and JSON body are returned unchanged.

Routes:
  POST /notion/fetch-page    {pageId, token}
  POST /notion/fetch-blocks  {blockId, token}
  POST /notion/search        {query, token}
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from sidebot_bridge.constants import NOTION_API_BASE, NOTION_PAGE_SIZE, NOTION_TIMEOUT, NOTION_VERSION

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notion", tags=["notion"])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class _NotionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token: Optional[str] = None


class FetchPageRequest(_NotionRequest):
    page_id: Optional[str] = Field(default=None, alias="pageId")


class FetchBlocksRequest(_NotionRequest):
    block_id: Optional[str] = Field(default=None, alias="blockId")


class SearchRequest(_NotionRequest):
    query: Optional[str] = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _notion_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url=NOTION_API_BASE, timeout=NOTION_TIMEOUT)


def _notion_headers(token: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {token}",
        "Notion-Version": NOTION_VERSION,
        "Content-Type": "application/json",
    }


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": message})


async def _forward(method: str, path: str, token: str, **kwargs: Any) -> JSONResponse:
    """Call Notion and mirror its status + JSON body back to the plugin."""
    try:
        async with _notion_client() as client:
            resp = await client.request(method, path, headers=_notion_headers(token), **kwargs)
    except httpx.HTTPError as exc:
        logger.error("[Notion] %s %s failed: %s", method, path, exc)
        return JSONResponse(status_code=500, content={"error": str(exc) or exc.__class__.__name__})

    try:
        body = resp.json()
    except ValueError:
        logger.warning("[Notion] %s %s returned non-JSON (%d)", method, path, resp.status_code)
        return JSONResponse(status_code=500, content={"error": "Parse error", "raw": resp.text[:2000]})

    logger.info("[Notion] %s %s → %d", method, path, resp.status_code)
    return JSONResponse(status_code=resp.status_code, content=body)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("/fetch-page")
async def fetch_page(req: FetchPageRequest) -> JSONResponse:
    if not req.token:
        return _bad_request("Notion token required")
    if not req.page_id:
        return _bad_request("pageId required")
    return await _forward("GET", f"/pages/{req.page_id}", req.token)


@router.post("/fetch-blocks")
async def fetch_blocks(req: FetchBlocksRequest) -> JSONResponse:
    if not req.token:
        return _bad_request("Notion token required")
    if not req.block_id:
        return _bad_request("blockId required")
    return await _forward(
        "GET",
        f"/blocks/{req.block_id}/children",
        req.token,
        params={"page_size": NOTION_PAGE_SIZE},
    )


@router.post("/search")
async def search(req: SearchRequest) -> JSONResponse:
    if not req.token:
        return _bad_request("Notion token required")
    return await _forward(
        "POST",
        "/search",
        req.token,
        json={"query": req.query or "", "filter": {"value": "page", "property": "object"}},
    )
