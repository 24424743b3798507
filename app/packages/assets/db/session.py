"""Database engine and session factory configuration."""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker

from app.packages.assets.core.config import Settings, get_settings


def build_connect_args(settings: Settings) -> dict[str, Any]:
    """Bounded connect/statement timeouts so a stalled store cannot pin a worker."""
    backend = make_url(settings.sql_database_url).get_backend_name()
    if backend == "sqlite":
        return {"check_same_thread": False, "timeout": settings.database_connect_timeout}
    if backend == "postgresql":
        return {
            "connect_timeout": settings.database_connect_timeout,
            "options": f"-c statement_timeout={settings.database_statement_timeout_ms}",
        }
    return {}


def build_engine(settings: Settings) -> Engine:
    url = settings.sql_database_url
    kwargs: dict[str, Any] = {
        "pool_pre_ping": True,
        "echo": settings.database_echo,
        "connect_args": build_connect_args(settings),
    }
    if make_url(url).get_backend_name() != "sqlite":
        kwargs["pool_timeout"] = settings.database_pool_timeout
    return create_engine(url, **kwargs)


settings = get_settings()

# ``pool_pre_ping`` keeps the connection pool healthy; ``echo`` mirrors SQL logs
# when enabled in settings for easier debugging.
engine = build_engine(settings)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
