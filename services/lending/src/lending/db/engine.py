from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from services.lending.src.lending.config import settings


def get_engine(database_url: str | None = None) -> Engine:
    """
    Create an engine for the lending database.

    SQLite connections are shared between the request threads and the
    background scheduler, so same-thread checking is turned off there.
    Postgres connections are pinged before use.
    """
    url = database_url or settings.database_url
    if url.startswith("sqlite"):
        return create_engine(url, echo=False, connect_args={"check_same_thread": False})
    return create_engine(url, echo=False, pool_pre_ping=True)


def init_db(engine: Engine) -> None:
    """Create every lending table that does not exist yet."""
    from services.lending.src.lending.db.models import metadata

    metadata.create_all(engine)
