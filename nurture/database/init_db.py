"""Create the nurture schema on the active database."""

from __future__ import annotations

import logging

import nurture.database.db as db_module
from nurture.models import Base

logger = logging.getLogger(__name__)


def init_db(engine=None) -> None:
    target = engine or db_module.get_engine()
    Base.metadata.create_all(bind=target)
    logger.info(
        "database.tables.created",
        extra={
            "event": "database.tables.created",
            "database_url": str(target.url),
            "tables": sorted(Base.metadata.tables),
        },
    )


if __name__ == "__main__":
    init_db()
