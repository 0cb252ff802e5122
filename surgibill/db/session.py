# surgibill/db/session.py
from typing import Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from surgibill.core.config import settings


def _engine_kwargs(db_uri: str) -> Dict[str, Any]:
    # sqlite pools do not take the MySQL pool sizing arguments
    if db_uri.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}, "future": True}
    return {
        "pool_pre_ping": True,
        "pool_recycle": 280,
        "pool_size": 10,
        "max_overflow": 20,
        "future": True,
    }


engine: Engine = create_engine(
    settings.SQLALCHEMY_DATABASE_URI,
    **_engine_kwargs(settings.SQLALCHEMY_DATABASE_URI),
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    future=True,
)
