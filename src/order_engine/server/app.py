"""FastAPI application setup and configuration."""

from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from order_engine import __version__
from order_engine.config.settings import settings
from order_engine.core.exceptions import OrderEngineError
from order_engine.core.logger import setup_logger
from order_engine.db import get_engine, get_session_factory, init_db
from order_engine.services.order_service import OrderService

logger = setup_logger(__name__)

# Error kind -> HTTP status
STATUS_BY_KIND = {
    "validation_error": status.HTTP_400_BAD_REQUEST,
    "not_found": status.HTTP_404_NOT_FOUND,
    "illegal_transition": status.HTTP_400_BAD_REQUEST,
    "conflict": status.HTTP_409_CONFLICT,
    "invariant_violation": status.HTTP_422_UNPROCESSABLE_ENTITY,
}

# Global variables for resource management
_engine = None
_session_factory = None


def get_order_service() -> OrderService:
    """Dependency for getting the order service."""
    if _session_factory is None:
        raise RuntimeError("Database not initialized")
    return OrderService(_session_factory)


async def handle_engine_error(request: Request, exc: OrderEngineError) -> JSONResponse:
    status_code = STATUS_BY_KIND.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
    logger.warning(f"{request.method} {request.url.path} -> {status_code}: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def create_app(database_url: Optional[str] = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        database_url: Overrides settings.database_url (tests point this at a temp file)
    """
    database_url = database_url or settings.database_url

    app = FastAPI(
        title="Order Engine",
        version=__version__,
        description="Order lifecycle, quoting and pricing reconciliation",
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from order_engine.server import routes

    app.include_router(routes.router)
    app.add_exception_handler(OrderEngineError, handle_engine_error)

    # Override the stub dependency with the actual service factory
    app.dependency_overrides[routes.get_order_service_stub] = get_order_service

    @app.on_event("startup")
    async def startup_db():
        """Initialize database on application startup."""
        global _engine, _session_factory

        try:
            logger.info(f"Initializing database: {database_url}")
            await init_db(database_url)

            _engine = get_engine(database_url, echo=settings.database_echo)
            _session_factory = get_session_factory(_engine)
            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}", exc_info=True)
            raise

    @app.on_event("shutdown")
    async def shutdown_db():
        """Close database connections."""
        global _engine, _session_factory

        if _engine:
            logger.info("Closing database connections...")
            try:
                await _engine.dispose()
                logger.info("Database connections closed successfully")
            except Exception as e:
                logger.error(f"Error closing database connections: {e}")
        _engine = None
        _session_factory = None

    return app
