import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from dagger_gen import storage
from dagger_gen.registry import SessionRegistry
from dagger_gen.routes import router

load_dotenv(Path(__file__).parent.parent / ".env")

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


def create_app(data_dir: Path | None = None, autosave_delay: float | None = None) -> FastAPI:
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    storage.init_storage(resolved)
    if autosave_delay is None:
        autosave_delay = float(storage.get_config()["autosave_delay_seconds"])

    registry = SessionRegistry(autosave_delay=autosave_delay)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        registry.flush_all()

    app = FastAPI(title="Dagger Gen", lifespan=lifespan)
    app.state.registry = registry
    # Set these to bypass the configured connections (tests, offline demo).
    app.state.generation_llm = None
    app.state.chat_model = None
    app.include_router(router, prefix="/api")

    logger.info("Data directory: %s", resolved)
    return app


# Default app instance for uvicorn (uses DATA_DIR env var or default)
app = create_app()
