"""Session CRUD, stage navigation, dial tuning and message history endpoints."""

from fastapi import APIRouter, HTTPException, Request

from dagger_gen import storage
from dagger_gen.dials import DIAL_IDS, reset_dials
from dagger_gen.session import set_adventure_name

from .deps import get_registry, get_session_ctx, session_view
from .models import CreateSession, DialValueBody, RenameSession, StageBody, ThemeBody

router = APIRouter()


@router.get("/sessions")
async def list_sessions():
    """List saved sessions, most recently saved first."""
    return storage.list_sessions()


@router.post("/sessions")
async def create_session(request: Request, body: CreateSession):
    """Start a new session in dial tuning with the welcome message."""
    ctx = get_registry(request).create(body.name)
    return session_view(ctx)


@router.get("/sessions/{session_id}")
async def get_session(request: Request, session_id: str):
    """Get a session's full state."""
    return session_view(get_session_ctx(request, session_id))


@router.patch("/sessions/{session_id}")
async def rename_session(request: Request, session_id: str, body: RenameSession):
    """Rename the adventure."""
    ctx = get_session_ctx(request, session_id)
    ctx.update_session(set_adventure_name, body.name)
    return session_view(ctx)


@router.delete("/sessions/{session_id}")
async def delete_session(request: Request, session_id: str):
    """Delete a session, its snapshot and its message log."""
    if not get_registry(request).delete(session_id):
        raise HTTPException(404, "Session not found")
    return {"ok": True}


@router.get("/sessions/{session_id}/messages")
async def get_messages(request: Request, session_id: str):
    """Get the stored conversation."""
    ctx = get_session_ctx(request, session_id)
    return [m.model_dump(mode="json") for m in ctx.state.conversation]


# -- Stage navigation ---------------------------------------------------------

@router.post("/sessions/{session_id}/stage")
async def set_stage(request: Request, session_id: str, body: StageBody):
    """Jump to a stage directly (no gate check)."""
    ctx = get_session_ctx(request, session_id)
    ctx.set_stage(body.stage)
    return session_view(ctx)


@router.post("/sessions/{session_id}/advance")
async def advance(request: Request, session_id: str):
    """Move to the next stage if the current one is complete."""
    ctx = get_session_ctx(request, session_id)
    if not ctx.advance():
        raise HTTPException(400, f"Stage '{ctx.stage}' is not complete")
    return session_view(ctx)


@router.post("/sessions/{session_id}/back")
async def go_back(request: Request, session_id: str):
    """Return to the previously visited stage."""
    ctx = get_session_ctx(request, session_id)
    if not ctx.go_back():
        raise HTTPException(400, "No previous stage")
    return session_view(ctx)


# -- Dials --------------------------------------------------------------------

def _check_dial(dial_id: str) -> None:
    if dial_id not in DIAL_IDS:
        raise HTTPException(404, f"Unknown dial '{dial_id}'")


@router.put("/sessions/{session_id}/dials/{dial_id}")
async def set_dial(request: Request, session_id: str, dial_id: str, body: DialValueBody):
    """Set one dial's value. Out-of-domain values are rejected with 422."""
    _check_dial(dial_id)
    ctx = get_session_ctx(request, session_id)
    if not ctx.set_dial(dial_id, body.value):
        raise HTTPException(422, f"Invalid value for dial '{dial_id}'")
    return session_view(ctx)


@router.post("/sessions/{session_id}/dials/{dial_id}/confirm")
async def confirm_dial(request: Request, session_id: str, dial_id: str):
    _check_dial(dial_id)
    ctx = get_session_ctx(request, session_id)
    ctx.confirm_dial(dial_id)
    return session_view(ctx)


@router.post("/sessions/{session_id}/dials/{dial_id}/unconfirm")
async def unconfirm_dial(request: Request, session_id: str, dial_id: str):
    _check_dial(dial_id)
    ctx = get_session_ctx(request, session_id)
    ctx.unconfirm_dial(dial_id)
    return session_view(ctx)


@router.post("/sessions/{session_id}/dials/{dial_id}/reset")
async def reset_dial(request: Request, session_id: str, dial_id: str):
    """Restore one dial to its default."""
    _check_dial(dial_id)
    ctx = get_session_ctx(request, session_id)
    ctx.reset_dial(dial_id)
    return session_view(ctx)


@router.post("/sessions/{session_id}/dials/reset")
async def reset_all_dials(request: Request, session_id: str):
    """Restore every dial to its default."""
    ctx = get_session_ctx(request, session_id)
    ctx.update_dials(lambda _dials: reset_dials())
    return session_view(ctx)


@router.post("/sessions/{session_id}/themes")
async def add_theme(request: Request, session_id: str, body: ThemeBody):
    """Add a theme (at most three, no duplicates)."""
    ctx = get_session_ctx(request, session_id)
    if not ctx.add_theme(body.theme):
        raise HTTPException(422, f"Cannot add theme '{body.theme}'")
    return session_view(ctx)


@router.delete("/sessions/{session_id}/themes/{theme}")
async def remove_theme(request: Request, session_id: str, theme: str):
    ctx = get_session_ctx(request, session_id)
    ctx.remove_theme(theme)
    return session_view(ctx)
