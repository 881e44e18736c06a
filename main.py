"""
WorkflowHub integrations service — application entry point.
"""

from __future__ import annotations

import logging
import sys

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.errors import register_exception_handlers
from api.middleware import register_middleware
from api.routes import import_router
from api.routes import router as resources_router
from config.settings import config
from connectors.encryption import get_cipher
from connectors.routes import router as consent_router
from database.session import create_tables, dispose_engine

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "urllib3", "googleapiclient.discovery_cache"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(
        title="WorkflowHub Integrations",
        version="1.0.0",
        description="Google account linking and Google → workflow import.",
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)
    register_exception_handlers(app)

    # Routes
    app.include_router(consent_router, prefix="/api/google")
    app.include_router(import_router, prefix="/api/google")
    app.include_router(resources_router, prefix="/api/integrations/google")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.on_event("startup")
    async def on_startup():
        oauth = config.google_oauth()
        if oauth.is_configured():
            logger.info("Google OAuth configured (redirect: %s)", oauth.redirect_uri)
        else:
            logger.warning("GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET not set — consent will fail")

        get_cipher()  # logs whether tokens are encrypted at rest

        if config.auto_create_tables:
            logger.info("Creating missing tables…")
            await create_tables()

        logger.info("Application ready to accept requests.")

    @app.on_event("shutdown")
    async def on_shutdown():
        await dispose_engine()

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )
