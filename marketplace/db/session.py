"""Engine and session factory.

The engine is created on first use so that importing the API does not
require a reachable database or an installed driver.
"""

from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from marketplace.core.config import get_settings

SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False)


@lru_cache
def get_engine() -> Engine:
    settings = get_settings()
    return create_engine(
        settings.database_url,
        pool_pre_ping=True,
        echo=settings.database_echo,
    )


def create_session() -> Session:
    """Open a new session bound to the configured engine."""
    return SessionLocal(bind=get_engine())
