"""
Unit of work - one database transaction per public service operation.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from bizledger.core.logging_config import get_logger
from bizledger.domain.exceptions import ConflictError, PersistenceError

logger = get_logger("unit_of_work")


class UnitOfWork:
    """
    Wraps a session so that nested ``atomic()`` blocks join the outermost one.
    Only the outermost block commits; any error rolls the whole unit back.
    """

    def __init__(self, session: Session):
        self.session = session
        self._depth = 0

    @contextmanager
    def atomic(self) -> Iterator[Session]:
        self._depth += 1
        try:
            yield self.session
            if self._depth == 1:
                self.session.commit()
        except IntegrityError as exc:
            self._rollback()
            logger.warning("integrity_violation", extra={"error": str(exc.orig)})
            raise ConflictError(f"Integrity constraint violated: {exc.orig}") from exc
        except SQLAlchemyError as exc:
            self._rollback()
            logger.error("store_failure", exc_info=True)
            raise PersistenceError(f"Backing store failure: {exc}") from exc
        except Exception:
            self._rollback()
            raise
        finally:
            self._depth -= 1

    @contextmanager
    def savepoint(self) -> Iterator[Session]:
        """Nested transaction; failures inside roll back only to the savepoint."""
        with self.session.begin_nested():
            yield self.session

    def _rollback(self) -> None:
        if self._depth == 1:
            self.session.rollback()
