"""
AZEBot Paywall Backend - FastAPI Application

Payment confirmation and access unlocking for paid analysis articles.
Checkout goes through an external redirect-based gateway; access is
granted only after the gateway confirms the transaction.
"""
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

from .config import Settings, settings
from .db import get_db
from .exceptions import PaymentError
from .mocks.demo_articles import seed_demo_articles
from .services.container import build_services
from .services.gateway_client import PaymentGateway
from .api.articles import router as articles_router
from .api.payments import router as payments_router
from .api.transactions import router as transactions_router


# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

VERSION = "0.1.0"

_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Credentials": "true",
}


def create_app(
    app_settings: Optional[Settings] = None,
    gateway: Optional[PaymentGateway] = None
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        app_settings: Settings to use (defaults to the environment-loaded ones)
        gateway: Gateway override (tests pass a MockPaymentGateway)
    """
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        - Startup: build services, initialize database, seed demo data,
          start the optional sweeper
        - Shutdown: stop the sweeper, dispose the engine
        """
        logger.info("Starting AZEBot paywall backend...")
        logger.info(f"Demo mode: {app_settings.demo_mode}")

        services = build_services(app_settings, gateway=gateway)
        try:
            await services.startup()
            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize services: {e}")
            raise

        if app_settings.demo_mode:
            await seed_demo_articles(services.articles)

        app.state.services = services
        logger.info("Server startup complete")

        yield

        logger.info("Shutting down AZEBot paywall backend...")
        try:
            await services.shutdown()
            logger.info("Services shutdown complete")
        except Exception as e:
            logger.error(f"Error during shutdown: {e}")

    app = FastAPI(
        title="AZEBot Paywall API",
        description="Payment confirmation and access unlocking for paid analyses",
        version=VERSION,
        lifespan=lifespan,
    )

    # Configure CORS middleware for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["*"],
    )

    @app.exception_handler(PaymentError)
    async def payment_error_handler(request: Request, exc: PaymentError):
        """
        Handle payment errors with the standard error response format.

        Status code comes from the exception class (400, 404, 409, 502, 503).
        """
        logger.warning(
            f"Payment error: {exc.error_code} - {exc.message}",
            extra={"details": exc.details}
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers=_CORS_HEADERS
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        """Input validation failures not caught by Pydantic."""
        logger.warning(f"Validation error: {str(exc)}")
        return JSONResponse(
            status_code=400,
            content={
                "error_code": "validation_error",
                "message": str(exc),
                "details": {}
            },
            headers=_CORS_HEADERS
        )

    @app.exception_handler(Exception)
    async def general_error_handler(request: Request, exc: Exception):
        """
        Catch-all handler for unexpected errors.

        Logs full exception for debugging but returns generic message to client.
        """
        logger.error(f"Unexpected error: {str(exc)}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error_code": "internal_error",
                "message": "An unexpected error occurred",
                "details": {"error_type": type(exc).__name__} if app_settings.demo_mode else {}
            },
            headers=_CORS_HEADERS
        )

    @app.get("/api/health")
    async def health_check(db: AsyncSession = Depends(get_db)):
        """
        Health check endpoint for monitoring and load balancers.
        """
        await db.execute(text("SELECT 1"))
        return {
            "status": "healthy",
            "database": "ok",
            "version": VERSION,
            "demo_mode": app_settings.demo_mode,
            "currency": app_settings.currency,
        }

    @app.get("/api/test")
    async def connectivity_test():
        """Connectivity check called by the checkout page before offering payment."""
        return {"status": "ok", "message": "Payment server reachable"}

    app.include_router(payments_router, prefix="/api", tags=["Payments"])
    app.include_router(articles_router, prefix="/api/articles", tags=["Articles"])
    app.include_router(transactions_router, prefix="/api/transactions", tags=["Transactions"])

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "azebot.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.demo_mode,
        log_level=settings.log_level.lower()
    )
