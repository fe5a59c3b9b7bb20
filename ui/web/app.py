"""
FastAPI Application - Read-only status API
==========================================

This module creates the status API and serves it with uvicorn inside
the bot's own event loop, next to the supervisor. The API only reads
the live session state; all mutation stays on the session loop.
"""

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import uvicorn

from core.config import Config
from core.logging import get_logger
from core.state import SessionState
from rules.compiler import RuleSet

logger = get_logger("web.app")


def create_app(
    state: SessionState,
    rules: RuleSet,
    config: Optional[Config] = None,
    debug: bool = False
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        state: Live session state (shared, not copied)
        rules: Compiled rules
        config: Application configuration
        debug: Include exception details in 500 responses

    Returns:
        Configured FastAPI application
    """
    config = config or Config()

    app = FastAPI(
        title=config.app_name,
        description="Read-only status of the running bot",
        version=config.version,
        debug=debug or config.debug,
    )

    app.state.session_state = state
    app.state.rules = rules
    app.state.config = config

    from .routes import router as main_router
    app.include_router(main_router, prefix="")

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "detail": str(exc) if debug else "An error occurred"}
        )

    logger.info("Web application created")

    return app


async def serve_app(
    app: FastAPI,
    host: str = "127.0.0.1",
    port: int = 8080,
    debug: bool = False
) -> None:
    """
    Serve the application on the running event loop.

    Unlike ``uvicorn.run`` this does not start a loop of its own, so it
    can be gathered with the supervisor.
    """
    server = uvicorn.Server(uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="debug" if debug else "info",
    ))

    logger.info(f"Starting web server on {host}:{port}")
    await server.serve()
