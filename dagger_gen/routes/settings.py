"""Health check, settings and tool catalog endpoints."""

from fastapi import APIRouter

from dagger_gen import storage
from dagger_gen.session import Stage
from dagger_gen.tools import all_tools, tools_for_stage

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings():
    """Get global settings (LLM connections, role assignments, context budgets)."""
    return storage.get_config()


@router.patch("/settings")
async def update_settings(body: dict):
    """Update global settings (partial merge)."""
    return storage.update_config(body)


@router.get("/tools")
async def list_tools(stage: Stage | None = None):
    """Tool definitions offered to the chat model, optionally for one stage."""
    tools = tools_for_stage(stage) if stage else all_tools()
    return [t.model_dump(by_alias=True) for t in tools]
