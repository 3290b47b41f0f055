"""SQLModel database engine and session management."""

import logging

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from tradeguard.config import settings

logger = logging.getLogger(__name__)


def make_engine(database_url: str) -> Engine:
    """Create an engine for the ledger store at ``database_url``."""
    # SQLite needs check_same_thread=False; PostgreSQL does not
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(database_url, echo=False, connect_args=connect_args)


engine = make_engine(settings.database_url)


def create_db_and_tables(bind: Engine | None = None):
    """Create all ledger tables. Called on startup."""
    import tradeguard.models  # noqa: F401  (populates SQLModel.metadata)

    bind = bind or engine
    SQLModel.metadata.create_all(bind)
    logger.info(f"Ledger tables ready ({bind.url.render_as_string(hide_password=True)})")
