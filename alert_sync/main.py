"""
Alert Sync Service - price alerts kept in sync with push notifications

Provides:
- Alert create / move / remove with remote push registration
- Recovery of alerts triggered while the service was down
- Live trigger reconciliation from push deliveries
"""

import logging
import signal
import sys
from datetime import datetime, timezone
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from . import metrics
from .api import alert_router, validation_exception_handler
from .config import Settings, settings as default_settings
from .service import AlertSyncService


def configure_logging(level: str = "INFO") -> None:
    """Configure structured logging"""
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level.upper())

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger()


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[AlertSyncService] = None,
) -> FastAPI:
    """Build the FastAPI application around an alert sync service"""
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL)
    service = service or AlertSyncService(settings)

    app = FastAPI(
        title="Alert Sync Service",
        description="Price alerts synchronized with push notifications",
        version="1.0.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(alert_router)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.state.alert_service = service

    @app.on_event("startup")
    async def startup_event():
        """Initialize services on startup"""
        logger.info("starting_alert_sync", port=settings.PORT)

        try:
            await service.start()
        except Exception as e:
            logger.error("startup_failed", error=str(e), exc_info=True)
            raise

    @app.on_event("shutdown")
    async def shutdown_event():
        """Cleanup on shutdown"""
        logger.info("shutting_down_alert_sync")

        try:
            await service.stop()
        except Exception as e:
            logger.error("shutdown_error", error=str(e))

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        store_ok = await service.check_store()
        body = {
            "status": "healthy" if store_ok else "unhealthy",
            "service": settings.SERVICE_NAME,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "store": "connected" if store_ok else "disconnected",
            "push_enabled": service.push_channel.enabled,
            "initial_sync": "completed" if service.engine.synced else "pending",
        }
        if not store_ok:
            return JSONResponse(status_code=503, content=body)
        return body

    @app.get("/metrics")
    async def metrics_endpoint():
        return Response(generate_latest(metrics.registry), media_type=CONTENT_TYPE_LATEST)

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "service": "Alert Sync Service",
            "version": "1.0.0",
            "status": "running",
            "endpoints": {
                "health": "/health",
                "metrics": "/metrics",
                "docs": "/docs",
                "alerts": "/api/alerts",
            }
        }

    return app


def signal_handler(sig, frame):
    """Handle shutdown signals"""
    logger.info("signal_received", signal=sig)
    sys.exit(0)


if __name__ == "__main__":
    app = create_app()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    logger.info("starting_uvicorn", host=default_settings.HOST, port=default_settings.PORT)

    uvicorn.run(
        app,
        host=default_settings.HOST,
        port=default_settings.PORT,
        log_level="info",
        access_log=True,
    )
