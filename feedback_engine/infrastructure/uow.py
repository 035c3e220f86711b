from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .exceptions import handle_database_error
from .logging import get_logger

logger = get_logger(__name__)


class UnitOfWork:
    """
    One transaction per ``begin()`` block: commit on success, roll back on any error.

    Services never commit; a grant consume and its response insert land in
    the same block and are committed together.
    """

    def __init__(self, SessionLocal: sessionmaker):
        self.SessionLocal = SessionLocal

    @contextmanager
    def begin(self) -> Iterator[Session]:
        s = self.SessionLocal()
        try:
            yield s
            try:
                s.commit()
            except SQLAlchemyError as e:
                # e.g. sqlite "database is locked" after the busy timeout
                raise handle_database_error(e, "commit") from e
        except Exception:
            logger.debug("Rolling back unit of work")
            s.rollback()
            raise
        finally:
            s.close()
