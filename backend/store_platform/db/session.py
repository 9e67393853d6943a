from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from store_platform.core.config import get_settings
from store_platform.models.base import Base

settings = get_settings()

engine = create_engine(settings.database_url, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)


def get_db() -> Generator[Session, None, None]:
    with SessionLocal() as db:
        yield db


def init_db() -> None:
    """Create missing tables. Alembic owns the schema in production."""
    import store_platform.models  # noqa: F401

    Base.metadata.create_all(engine)
