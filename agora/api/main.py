"""
agora.api.main — FastAPI application entry point
==================================================

Run with::

    uvicorn agora.api.main:app --reload --port 8000

or ``python -m agora``, which also creates tables and seeds defaults.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from agora import __version__  # noqa: E402
from agora.api.auth import router as auth_router  # noqa: E402
from agora.api.deps import get_engine  # noqa: E402
from agora.api.rate_limit import configure_rate_limiter  # noqa: E402
from agora.api.routes.admin import router as admin_router  # noqa: E402
from agora.api.routes.blog import router as blog_router  # noqa: E402
from agora.api.routes.forum import router as forum_router  # noqa: E402
from agora.api.routes.projects import router as projects_router  # noqa: E402
from agora.api.routes.rewards import router as rewards_router  # noqa: E402
from agora.api.routes.users import router as users_router  # noqa: E402
from agora.api.routes.votes import router as votes_router  # noqa: E402
from agora.services.log_buffer import install_handler  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine."""
    # Uvicorn reconfigures logging on startup, so attach the buffer here.
    install_handler()

    engine = get_engine()
    configure_rate_limiter(engine=engine)
    logger.info("Agora API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Agora API shutting down")


app = FastAPI(
    title="Agora Forum API",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for _router in (
    auth_router,
    forum_router,
    votes_router,
    rewards_router,
    users_router,
    blog_router,
    projects_router,
    admin_router,
):
    app.include_router(_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
