import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backoffice.database import (
    check_database_connection,
    create_database_engine,
    create_session_factory,
    init_db,
)
from backoffice.exceptions import TransactionError, ValidationError
from backoffice.logging_config import configure_logging
from backoffice.routers import movements_router, stock_router

logger = logging.getLogger(__name__)


def log_routes(routes) -> None:
    """Log every registered path. Entries without a path (mounted routers) are skipped."""
    logger.info("Registered routes:")
    for route in routes:
        path = getattr(route, "path", None)
        if path is None:
            continue
        methods = getattr(route, "methods", None)
        methods = ", ".join(sorted(methods)) if methods else "N/A"
        logger.info("PATH: %-40s | METHODS: %s", path, methods)


def create_app(database_url: Optional[str] = None) -> FastAPI:
    # ----------------------------
    # Startup / shutdown
    # ----------------------------
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # The engine is the only storage handle; routes get sessions via get_db
        engine = create_database_engine(database_url)
        init_db(engine)
        app.state.engine = engine
        app.state.session_factory = create_session_factory(engine)

        log_routes(app.routes)

        yield

        engine.dispose()
        logger.info("Database engine disposed")

    app = FastAPI(title="Back-office Stock Ledger", lifespan=lifespan)

    # ----------------------------
    # CORS (allow the back-office frontends)
    # ----------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=os.getenv("CORS_ALLOW_ORIGINS", "*").split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ----------------------------
    # Error mapping
    # ----------------------------
    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=exc.to_dict())

    @app.exception_handler(TransactionError)
    async def transaction_error_handler(request: Request, exc: TransactionError):
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=exc.to_dict())

    # ----------------------------
    # Health & root endpoints
    # ----------------------------
    @app.get("/")
    def root():
        return {"status": "API running"}

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.get("/db-test")
    def db_test(request: Request):
        connected = check_database_connection(request.app.state.engine)
        return {"db": "connected" if connected else "unavailable"}

    # ----------------------------
    # Routers
    # ----------------------------
    app.include_router(movements_router.router, prefix="/api/v1")
    app.include_router(stock_router.router, prefix="/api/v1")

    return app


configure_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "backoffice.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )
