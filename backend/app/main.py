"""Workflow router FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.deps import close_rest_client
from app.api.routes import auth, canvas, generate, health, issues, metrics, workflows
from app.core.auth import require_session
from app.core.config import settings
from app.core.logging_config import configure_logging
from app.core.metrics import app_info
from app.core.middleware import ObservabilityMiddleware
from app.core.redis import close_redis

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle events."""
    app_info.info(
        {
            "version": "0.1.0",
            "env": settings.app_env,
            "store_backend": settings.store.store_backend,
        }
    )

    yield

    await close_rest_client()
    await close_redis()


app = FastAPI(
    title="Visual Workflow Router",
    description="Workflow diagram editor backend: canvas sync, issues and AI generation",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

protected = [Depends(require_session)]

# Routes: all REST under /api/v1/
app.include_router(health.router, tags=["health"])
app.include_router(metrics.router, tags=["metrics"])
app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(
    generate.router, prefix="/api/v1/workflows", tags=["generate"], dependencies=protected
)
app.include_router(
    workflows.router, prefix="/api/v1/workflows", tags=["workflows"], dependencies=protected
)
app.include_router(
    canvas.router, prefix="/api/v1/workflows", tags=["canvas"], dependencies=protected
)
app.include_router(
    issues.router, prefix="/api/v1/workflows", tags=["issues"], dependencies=protected
)
