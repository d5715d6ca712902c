"""Session-owning base for the lead store and the outcome tracker.

Services commit per write, so one lead's failure never rolls back another
lead's progress.
"""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from nurture.database import db as db_module

logger = logging.getLogger(__name__)


class BaseService:
    def __init__(self, db: Session | None = None) -> None:
        self.db = db if db is not None else db_module.get_session_factory()()

    def commit(self) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.warning(
                "store.commit_failed",
                extra={"event": "store.commit_failed", "service": type(self).__name__},
            )
            raise

    def rollback(self) -> None:
        self.db.rollback()

    def __enter__(self) -> "BaseService":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type:
            self.rollback()
        self.db.close()
