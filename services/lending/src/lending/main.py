import logging
import os
from contextlib import asynccontextmanager

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from services.lending.src.lending.config import settings
from services.lending.src.lending.domain.errors import LendingError
from services.lending.src.lending.routes import api_router

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: BackgroundScheduler | None = None


def _enabled(name: str, default: str = "true") -> bool:
    return os.getenv(name, default).lower() == "true"


def run_health_monitor() -> None:
    """Recompute health factors for every open position and raise alerts."""
    from services.lending.src.lending.jobs.monitor_health_factors import monitor_health_factors
    from services.lending.src.lending.routes.dependencies import get_db_engine

    try:
        summary = monitor_health_factors(get_db_engine())
        logger.info(
            f"Health monitor: {summary.users_checked} checked, {summary.alerts_created} alerts"
        )
    except Exception as e:
        logger.error(f"Health monitor failed: {e}", exc_info=True)


def run_liquidation_scan() -> None:
    from services.lending.src.lending.jobs.scan_liquidations import scan_liquidations
    from services.lending.src.lending.routes.dependencies import get_db_engine

    try:
        opportunities = scan_liquidations(get_db_engine())
        logger.info(f"Liquidation scan: {len(opportunities)} opportunities")
    except Exception as e:
        logger.error(f"Liquidation scan failed: {e}", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, seed reserves and start the scheduler on startup."""
    global scheduler

    if _enabled("RUN_MIGRATIONS"):
        from services.lending.src.lending.db.engine import init_db
        from services.lending.src.lending.jobs.seed_reserves import seed_reserves
        from services.lending.src.lending.routes.dependencies import get_db_engine

        engine = get_db_engine()
        init_db(engine)
        seed_reserves(engine)

    monitor = _enabled("ENABLE_HEALTH_MONITOR")
    scan = _enabled("ENABLE_LIQUIDATION_SCAN")
    if monitor or scan:
        scheduler = BackgroundScheduler()
        if monitor:
            logger.info(
                f"Scheduling health monitor every {settings.health_monitor_interval_minutes} min"
            )
            scheduler.add_job(
                run_health_monitor,
                "interval",
                minutes=settings.health_monitor_interval_minutes,
                id="health_monitor",
                name="Health Factor Monitor",
            )
        if scan:
            logger.info(
                f"Scheduling liquidation scan every {settings.liquidation_scan_interval_minutes} min"
            )
            scheduler.add_job(
                run_liquidation_scan,
                "interval",
                minutes=settings.liquidation_scan_interval_minutes,
                id="liquidation_scan",
                name="Liquidation Scan",
            )
        scheduler.start()

    yield

    # Shutdown scheduler
    if scheduler is not None:
        scheduler.shutdown(wait=False)
        scheduler = None
        logger.info("Scheduler shutdown complete")


app = FastAPI(title="Lending Risk API", lifespan=lifespan)

cors_origins = [
    "http://localhost:3000",
    "https://localhost:3000",
]

# Add custom origin from environment
if os.getenv("CORS_ORIGIN"):
    cors_origins.append(os.getenv("CORS_ORIGIN"))

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LendingError)
async def lending_error_handler(request: Request, exc: LendingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": f"{field}: {message}" if field else message},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} database error: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error"},
    )


# Include API routes
app.include_router(api_router)


@app.get("/")
def root() -> dict[str, str]:
    return {"service": "lending-risk-api", "docs": "/docs"}


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
