"""FastAPI application entrypoint."""

from contextlib import asynccontextmanager
import logging
from time import perf_counter

from fastapi import Depends, FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.db.dependencies import get_db
from app.db.session import SessionLocal
from app.routers import contacts, identify

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _warm_backend_state() -> None:
    """Prime the DB connection pool at process start."""

    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Backend warm-up failed; continuing without startup pre-warm.")


@asynccontextmanager
async def lifespan(_: FastAPI):
    _configure_logging(get_settings().log_level)
    _warm_backend_state()
    yield


settings = get_settings()
app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(identify.router, tags=["identify"])
app.include_router(contacts.router, tags=["contacts"])


@app.get("/health")
def health(response: Response, db: Session = Depends(get_db)) -> dict[str, str | float]:
    """Health check backed by a round trip to the database."""

    started = perf_counter()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        elapsed_ms = round((perf_counter() - started) * 1000.0, 2)
        logger.exception("health.database_unavailable elapsed_ms=%.2f", elapsed_ms)
        response.status_code = 503
        return {"status": "unhealthy", "database": "disconnected", "responseTimeMs": elapsed_ms}

    elapsed_ms = round((perf_counter() - started) * 1000.0, 2)
    return {"status": "ok", "database": "connected", "responseTimeMs": elapsed_ms}
