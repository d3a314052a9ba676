# =======================================================================================
# visitor_checkin/main.py - FastAPI Application Entry Point
# =======================================================================================
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
from .config import config
from .api.routes.scan import router as scan_router
from .api.routes.auth import router as auth_router
from .database import get_db_manager
from .models.schemas import HealthResponse
from .utils.log import configure_logging
from .workers.serial_worker import start_serial_worker, stop_serial_worker

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if config.DB_AUTO_CREATE:
        get_db_manager().create_schema()
    start_serial_worker()
    logger.info("Visitor check-in API started")
    yield
    stop_serial_worker()


def create_app(start_background: bool = True) -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="Visitor Check-in API",
        version="1.0.0",
        description="Barcode/QR check-in decisions for registered event visitors",
        debug=config.API_DEBUG,
        lifespan=lifespan if start_background else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(scan_router, prefix="/api", tags=["scan"])
    app.include_router(auth_router, prefix="/api", tags=["auth"])

    @app.get("/api/health", response_model=HealthResponse, tags=["health"])
    def api_health():
        try:
            get_db_manager().fetch_one("SELECT 1")
            return HealthResponse(status="ok", dataAvailable=True, message=None)
        except SQLAlchemyError as e:
            return HealthResponse(status="error", dataAvailable=False, message=str(e))

    return app


app = create_app()
