"""Database bootstrapping utilities."""

from __future__ import annotations

from app.packages.drive.core.logger import get_logger
from app.packages.drive.db import session as db_session
from app.packages.drive.models.base import Base
from app.packages.drive.models.fs_closure import FsClosure  # noqa: F401 - ensure table creation
from app.packages.drive.models.fs_node import FsNode  # noqa: F401 - ensure table creation

logger = get_logger("db")


def init_db() -> None:
    """Create the node and closure tables if they do not exist."""
    Base.metadata.create_all(bind=db_session.engine)
    logger.info("Database schema ready (%s)", ", ".join(sorted(Base.metadata.tables)))
