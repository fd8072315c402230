import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flowdesk.config import settings
from flowdesk.middleware.exceptions import register_exception_handlers
from flowdesk.routers import departments, health, knowledge_bases, templates, workflows
from flowdesk.utils.cache import close_redis

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_redis()
    logger.info("Redis connection closed")


app = FastAPI(
    title="Flowdesk",
    description="AI workflow platform — resource access control API",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(departments.router, prefix="/api/departments", tags=["departments"])
app.include_router(workflows.router, prefix="/api/workflows", tags=["workflows"])
app.include_router(knowledge_bases.router, prefix="/api/knowledge-bases", tags=["knowledge-bases"])
app.include_router(templates.router, prefix="/api/templates", tags=["templates"])
