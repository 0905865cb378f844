"""FastMCP server exposing the authoring tools for one session.

Tools (same handlers the chat runner dispatches to):
  - get_session()                                current snapshot
  - signal_ready(stage, summary)
  - suggest_adventure_name(name, reason)
  - set_dial(dial_id, value, confirm)
  - set_frame(name, description, themes, typical_adversaries, lore)
  - select_frame(frame_id)
  - set_outline(title, scenes, summary)
  - set_scene_draft(scene_id, introduction, key_moments, ...)
  - confirm_scene(scene_id)
  - add_npc(name, role, description, ...)
  - select_adversary(name, quantity)
  - select_item(category, name, quantity)
  - add_echo(category, title, content)

The active session is replaced via set_context() for tests, or loaded from
storage by id when run as __main__.

Usage:
    python -m dagger_gen.mcp_server <session_id>
"""

from __future__ import annotations

from typing import Any

from mcp.server.fastmcp import FastMCP

from dagger_gen.context import SessionContext
from dagger_gen.tools import ToolError, dispatch_tool

mcp = FastMCP("dagger-gen")

_context: SessionContext = SessionContext()


def set_context(ctx: SessionContext) -> None:
    """Replace the active session (used in tests)."""
    global _context
    _context = ctx


def get_context() -> SessionContext:
    """Return the active session (used in tests to inspect state)."""
    return _context


def _call(name: str, args: dict[str, Any]) -> Any:
    result, is_error = dispatch_tool(_context, name, args)
    if is_error:
        raise ToolError(result["error"])
    return result


@mcp.tool()
def get_session() -> dict:
    """Return the current session snapshot (stage, dials, content)."""
    return _context.snapshot()


@mcp.tool()
def signal_ready(stage: str, summary: str) -> dict:
    """Signal that the current stage is complete."""
    return _call("signal_ready", {"stage": stage, "summary": summary})


@mcp.tool()
def suggest_adventure_name(name: str, reason: str = "") -> dict:
    """Set the adventure's name."""
    return _call("suggest_adventure_name", {"name": name, "reason": reason})


@mcp.tool()
def set_dial(dial_id: str, value: Any, confirm: bool = True) -> dict:
    """Set (and by default confirm) one adventure dial."""
    return _call("set_dial", {"dial_id": dial_id, "value": value, "confirm": confirm})


@mcp.tool()
def set_frame(
    name: str,
    description: str = "",
    themes: list[str] | None = None,
    typical_adversaries: list[str] | None = None,
    lore: str = "",
) -> dict:
    """Record a custom adventure frame."""
    return _call("set_frame", {
        "name": name,
        "description": description,
        "themes": themes or [],
        "typical_adversaries": typical_adversaries or [],
        "lore": lore,
    })


@mcp.tool()
def select_frame(frame_id: str) -> dict:
    """Choose one of the catalog frames offered for this session."""
    return _call("select_frame", {"frame_id": frame_id})


@mcp.tool()
def set_outline(title: str, scenes: list[dict], summary: str = "") -> dict:
    """Record the outline. Each scene needs scene_number and title."""
    return _call("set_outline", {"title": title, "summary": summary, "scenes": scenes})


@mcp.tool()
def set_scene_draft(
    scene_id: str,
    introduction: str,
    key_moments: list[dict] | None = None,
    resolution: str = "",
    tier_guidance: str = "",
) -> dict:
    """Record the draft of one outlined scene."""
    return _call("set_scene_draft", {
        "scene_id": scene_id,
        "introduction": introduction,
        "key_moments": key_moments or [],
        "resolution": resolution,
        "tier_guidance": tier_guidance,
    })


@mcp.tool()
def confirm_scene(scene_id: str) -> dict:
    """Confirm a drafted scene."""
    return _call("confirm_scene", {"scene_id": scene_id})


@mcp.tool()
def add_npc(
    name: str,
    role: str = "neutral",
    description: str = "",
    personality: str = "",
    motivations: list[str] | None = None,
) -> dict:
    """Add an NPC to the adventure's cast."""
    return _call("add_npc", {
        "name": name,
        "role": role,
        "description": description,
        "personality": personality,
        "motivations": motivations or [],
    })


@mcp.tool()
def select_adversary(name: str, quantity: int = 1) -> dict:
    """Add a catalog adversary to the roster."""
    return _call("select_adversary", {"name": name, "quantity": quantity})


@mcp.tool()
def select_item(category: str, name: str, quantity: int = 1) -> dict:
    """Add a catalog item to the rewards."""
    return _call("select_item", {"category": category, "name": name, "quantity": quantity})


@mcp.tool()
def add_echo(category: str, title: str, content: str = "") -> dict:
    """Add an echo (complications, rumors, discoveries, intrusions, wonders)."""
    return _call("add_echo", {"category": category, "title": title, "content": content})


if __name__ == "__main__":
    import os
    import sys
    from pathlib import Path

    from dagger_gen import storage
    from dagger_gen.registry import SessionRegistry

    storage.init_storage(Path(os.getenv("DATA_DIR", "data")))
    ctx = SessionRegistry(autosave_delay=0).get(sys.argv[1]) if len(sys.argv) > 1 else None
    if ctx is None:
        sys.exit("usage: python -m dagger_gen.mcp_server <session_id>")
    set_context(ctx)
    mcp.run()
