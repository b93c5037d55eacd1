from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from config.settings import Settings, get_settings, validate_startup
from errors.handlers import register_exception_handlers
from errors.exceptions import AppException, internal_error
from health.service import HealthCheckService
from ingestion.models import validate_submission
from ingestion.service import Clock, LocationIngestionService
from middleware.request_id import RequestIDMiddleware, REQUEST_ID_HEADER
from storage import LocationStore, create_location_store
from telemetry.service import initialize_telemetry

logger = logging.getLogger(__name__)

SERVICE_NAME = "Location Ping Service"
SERVICE_VERSION = "1.0.0"


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[LocationStore] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Run with ``uvicorn main:create_app --factory`` or ``python main.py``.

    Args:
        settings: Application settings, loaded from the environment if omitted
        store: Location store, built from settings if omitted
        clock: Time source for default timestamps, system UTC clock if omitted
    """
    settings = settings or get_settings()
    validate_startup(settings)

    # Structured JSON logging for everything below
    telemetry_service = initialize_telemetry(settings)

    store = store or create_location_store(settings)

    ingestion_service = LocationIngestionService(
        store=store,
        clock=clock,
        dedup_window_ms=settings.dedup_window_ms,
        telemetry=telemetry_service,
    )

    health_check_service = HealthCheckService(
        store=store,
        check_timeout=settings.health_check_timeout_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Prepare the store on startup; an unreachable store is logged, not fatal."""
        try:
            logger.info("🚀 Starting Location Ping Service...")
            await store.ensure_index()
            logger.info(f"✅ Location store ready ({store.name})")
        except Exception as e:
            logger.error(f"❌ Location store unavailable at startup: {e}")

        yield

        logger.info("👋 Shutting down Location Ping Service...")
        await store.close()

    app = FastAPI(title=SERVICE_NAME, version=SERVICE_VERSION, lifespan=lifespan)
    app.state.settings = settings
    app.state.ingestion_service = ingestion_service
    app.state.health_check_service = health_check_service

    register_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,  # Only configured origins, no wildcards
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Accept", "Content-Type", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER],
        max_age=600,
    )

    # Added after CORS so it wraps every request
    app.add_middleware(RequestIDMiddleware)

    # =========================================================================
    # Location API
    # =========================================================================

    @app.post("/api/receive-location")
    async def receive_location(request: Request):
        """
        Receive one location ping.

        Body: ``{token?, latitude, longitude, accuracy?, timestamp?}``.

        Returns:
            dict: ``{"ok": true, "id": ...}``, plus ``"duplicate": true``
            when the ping repeats the token's latest sample within the
            dedup window

        Raises:
            AppException: 400 for invalid coordinates, 500 for store failures
        """
        try:
            try:
                payload = await request.json()
            except ValueError:
                payload = None

            submission = validate_submission(payload)
            result = await ingestion_service.submit(submission)

            response = {"ok": True, "id": result.id}
            if result.duplicate:
                response["duplicate"] = True
            return response

        except AppException:
            raise
        except Exception as e:
            logger.error(f"❌ Error saving location: {e}", exc_info=True)
            raise internal_error(details={"error": str(e)})

    @app.get("/api/locations")
    async def list_locations(token: Optional[str] = None):
        """
        List stored samples in insertion order, optionally for one token.
        """
        try:
            samples = await ingestion_service.list_samples(token)
            return JSONResponse(content=[sample.model_dump(mode="json") for sample in samples])
        except AppException:
            raise
        except Exception as e:
            logger.error(f"❌ Error listing locations: {e}", exc_info=True)
            raise internal_error(details={"error": str(e)})

    @app.post("/api/clear")
    async def clear_locations():
        """Delete every stored sample."""
        try:
            await ingestion_service.clear()
            return {"ok": True}
        except AppException:
            raise
        except Exception as e:
            logger.error(f"❌ Error clearing locations: {e}", exc_info=True)
            raise internal_error(details={"error": str(e)})

    # =========================================================================
    # Health Check Endpoints
    # =========================================================================

    @app.get("/health")
    async def health_basic():
        """Returns 200 OK when the service is accepting requests."""
        result = await health_check_service.check_health()
        return {
            "status": result["status"],
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "timestamp": result["timestamp"]
        }

    @app.get("/health/ready")
    async def health_ready():
        """
        Readiness check against the location store.

        Returns:
            JSONResponse: 200 when the store answers, 503 with
            ``failure_reasons`` when it does not
        """
        health_status = await health_check_service.check_readiness()
        response_data = {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            **health_status.to_dict(),
        }

        if health_status.status == "unhealthy":
            response_data["failure_reasons"] = [
                {"dependency": dep.name, "error": dep.error}
                for dep in health_status.dependencies if not dep.healthy
            ]
            return JSONResponse(status_code=503, content=response_data)

        return response_data

    @app.get("/health/live")
    async def health_live():
        """Returns 200 OK if the process is running, regardless of the store."""
        result = await health_check_service.check_liveness()
        return {
            "status": result["status"],
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "timestamp": result["timestamp"]
        }

    # Static assets last so API routes win
    static_path = Path(settings.static_dir)
    if static_path.is_dir():
        app.mount("/", StaticFiles(directory=static_path, html=True), name="static")
        logger.info(f"Serving static files from {static_path.resolve()}")

    return app


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port, log_level=settings.log_level.lower())
