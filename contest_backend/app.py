"""
FastAPI application factory for the contest backend.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from contest_backend.config import Settings, check_startup, get_settings
from contest_backend.dependencies import Backends, init_backends
from contest_backend.errors import register_exception_handlers
from contest_backend.routes import router

logger = logging.getLogger(__name__)

_REPEATED_SLASHES = re.compile(r"/{2,}")


class CollapseSlashesMiddleware:
    """Treat ``/api//entries`` like ``/api/entries`` instead of redirecting."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http" and "//" in scope["path"]:
            scope = dict(scope, path=_REPEATED_SLASHES.sub("/", scope["path"]))
        await self.app(scope, receive, send)


def create_app(
    settings: Optional[Settings] = None, backends: Optional[Backends] = None
) -> FastAPI:
    if backends is not None:
        settings = backends.settings
    settings = settings or get_settings()
    if backends is None:
        # Missing or unsafe payment credentials abort startup.
        check_startup(settings)
        backends = init_backends(settings)

    app = FastAPI(title="Contest Entry Backend (FastAPI)", version="0.1.0")
    app.state.backends = backends

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.add_middleware(CollapseSlashesMiddleware)
    register_exception_handlers(
        app, expose_traceback=settings.environment == "development"
    )
    app.include_router(router, prefix=settings.api_prefix)

    @app.get("/", include_in_schema=False)
    def root():
        prefix = settings.api_prefix
        return {
            "message": "Contest Entry API Server",
            "status": "running",
            "environment": settings.deployment_label,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "endpoints": {
                "health": f"{prefix}/health",
                "createPaymentIntent": f"{prefix}/payment-intents",
                "submitEntry": f"{prefix}/entries",
                "getUserEntries": f"{prefix}/entries/:userId",
            },
        }

    logger.info(
        "Contest backend configured for %s (%s)",
        settings.deployment_label,
        settings.environment,
    )
    return app
