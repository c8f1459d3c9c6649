"""
FastAPI application for the Byte&Battle backend.

The browser client calls this API directly, so CORS is opened to the
configured origins. ``/health`` reports queue depth for the judge workers.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bytebattle.config import get_settings
from bytebattle.dependencies import get_queue_client
from bytebattle.routes import router


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Byte&Battle Backend", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router, prefix=settings.api_prefix)

    @app.get("/health")
    def health():
        return {"status": "ok", "queued_submissions": get_queue_client().size()}

    return app


app = create_app()
