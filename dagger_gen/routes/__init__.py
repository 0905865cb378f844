"""FastAPI API endpoints under /api.

Endpoint groups: settings (health, settings, tools), sessions (CRUD, stage
navigation, dials, messages), content (frame, outline, scenes, NPCs,
adversaries, items, echoes, all nested under /api/sessions/{session_id}/)
and chat (streaming turns).
"""

from fastapi import APIRouter

from .chat import router as chat_router
from .content import router as content_router
from .sessions import router as sessions_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(sessions_router)
router.include_router(content_router)
router.include_router(chat_router)
