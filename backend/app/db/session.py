"""Engine and session factory bound to the configured database."""

from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.config import get_settings


def _engine_kwargs(database_url: str, pool_size: int) -> dict[str, Any]:
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_size": pool_size, "pool_pre_ping": True}


_settings = get_settings()

engine = create_engine(
    _settings.database_url,
    future=True,
    **_engine_kwargs(_settings.database_url, _settings.database_pool_size),
)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
