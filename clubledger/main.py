"""Club ledger FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI

from clubledger.api.errors import register_error_handlers
from clubledger.api.ledger import router as ledger_router
from clubledger.config import Settings, settings as default_settings
from clubledger.services.db import create_engine_from_url, create_session_factory, create_tables
from clubledger.services.logging import setup_server_logging
from clubledger.services.store import LedgerStore

logger = logging.getLogger(__name__)


def build_store(app_settings: Settings, session_factory) -> LedgerStore:
    """Ledger store configured from settings."""
    return LedgerStore(
        session_factory,
        max_attempts=app_settings.ledger_max_attempts,
        wait_initial=app_settings.ledger_retry_wait_initial,
        wait_max=app_settings.ledger_retry_wait_max,
        default_timeout=app_settings.ledger_timeout_seconds,
    )


def create_app(app_settings: Settings | None = None) -> FastAPI:
    """Build the API application.

    The database engine and ledger store are created on startup and disposed
    on shutdown; request handlers reach the store through ``app.state``.
    """
    app_settings = app_settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application lifecycle (startup and shutdown)."""
        engine = create_engine_from_url(app_settings.database_url, echo=app_settings.database_echo)
        await create_tables(engine)
        app.state.store = build_store(app_settings, create_session_factory(engine))
        logger.info("Database tables initialized")
        yield
        logger.info("Application shutting down")
        await engine.dispose()

    app = FastAPI(
        title=app_settings.api_title,
        description="Membership club payments, receipts and annual fees",
        version=app_settings.api_version,
        lifespan=lifespan,
    )
    register_error_handlers(app)
    app.include_router(ledger_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    return app


app = create_app()


def run() -> None:
    """Run the API server under uvicorn."""
    import argparse

    import uvicorn

    parser = argparse.ArgumentParser(description="Club ledger API server")
    parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    parser.add_argument("--port", type=int, default=8000, help="Bind port")
    args = parser.parse_args()

    load_dotenv()
    app_settings = Settings()
    setup_server_logging(app_settings.log_file, app_settings.log_level)
    logger.info(f"Starting club ledger API on {args.host}:{args.port}")
    uvicorn.run(create_app(app_settings), host=args.host, port=args.port)


if __name__ == "__main__":
    run()
