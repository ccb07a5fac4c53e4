import logging
import logging.handlers
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from genieflow.api.pipelines import router as pipelines_router
from genieflow.config import settings
from genieflow.engine.store import session_store

LOG_DIR = Path(settings.log_dir)
LOG_DIR.mkdir(parents=True, exist_ok=True)
LOG_FMT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_LEVEL = logging.DEBUG if settings.debug else logging.INFO

# Console handler (stdout)
logging.basicConfig(level=LOG_LEVEL, format=LOG_FMT)

# File handler, rotated daily, keeps 30 days
_file_handler = logging.handlers.TimedRotatingFileHandler(
    LOG_DIR / "genieflow.log",
    when="midnight",
    backupCount=30,
    encoding="utf-8",
)
_file_handler.setFormatter(logging.Formatter(LOG_FMT))
_file_handler.setLevel(LOG_LEVEL)
logging.getLogger().addHandler(_file_handler)

logger = logging.getLogger("genieflow")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if not settings.anthropic_api_key:
        logger.warning("ANTHROPIC_API_KEY is not set; inference calls will fail")
    logger.info("GenieFlow started.")
    yield
    logger.info("GenieFlow shutting down.")
    for session in session_store.list_all():
        for task in session.pending_followups():
            task.cancel()


app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(pipelines_router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "app": settings.app_name, "sessions": session_store.count}
