import logging

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from store_platform.api.audit import router as audit_router
from store_platform.api.stores import router as stores_router
from store_platform.core.config import get_settings
from store_platform.db.session import SessionLocal, init_db
from store_platform.schemas.health import HealthResponse
from store_platform.services.kube import ClusterGateway
from store_platform.services.platform import build_platform

settings = get_settings()
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Store Platform Control Plane", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(stores_router)
app.include_router(audit_router)


@app.on_event("startup")
async def startup_event() -> None:
    init_db()
    gateway = ClusterGateway.from_settings(settings)
    platform = build_platform(settings, SessionLocal, gateway)
    platform.recover_interrupted()
    app.state.platform = platform
    logger.info(
        "%s started (%s), concurrency %d, max stores %d",
        settings.app_name,
        settings.environment,
        settings.provisioning_concurrency,
        settings.max_stores,
    )


@app.on_event("shutdown")
async def shutdown_event() -> None:
    platform = getattr(app.state, "platform", None)
    if platform:
        await platform.shutdown()


@app.get("/healthz", response_model=HealthResponse)
def healthz() -> HealthResponse:
    return HealthResponse(status="ok")


@app.get("/readyz", response_model=HealthResponse)
def readyz() -> HealthResponse:
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("database not reachable: %s", exc)
        raise HTTPException(status_code=503, detail="Database unavailable") from exc
    return HealthResponse(status="ready")


@app.get("/metrics")
def metrics() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
