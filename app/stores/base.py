"""Shared plumbing for the SQLAlchemy-backed stores.

Each logical operation in a service runs under one ``Deadline``. Stores check it
before touching the database and translate driver/pool failures into
``StoreTimeoutError`` / ``StoreUnavailableError`` so callers only ever see the
application error taxonomy.
"""

import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session

from app.errors import StoreTimeoutError, StoreUnavailableError


class Deadline:
    """Fixed time budget for a group of store calls."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.seconds = seconds
        self._clock = clock
        self._expires = clock() + seconds

    def remaining(self) -> float:
        return self._expires - self._clock()

    def check(self, operation: str) -> None:
        """Raise StoreTimeoutError if the budget is already spent."""
        if self.remaining() <= 0:
            raise StoreTimeoutError(detail=f"deadline of {self.seconds}s exceeded before {operation}")


def _is_timeout(error: sa_exc.DBAPIError) -> bool:
    text = str(error.orig).lower() if error.orig is not None else ""
    return "timeout" in text or "timed out" in text or "statement_timeout" in text or "locked" in text


class BaseStore:
    """Base class holding the request's DB session and deadline."""

    def __init__(self, db: Session, deadline: Deadline | None = None) -> None:
        self.db = db
        self.deadline = deadline

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        """Run one store operation, mapping infrastructure failures to store errors."""
        if self.deadline is not None:
            self.deadline.check(operation)
        try:
            yield
        except sa_exc.IntegrityError:
            self.db.rollback()
            raise
        except sa_exc.TimeoutError as exc:
            self.db.rollback()
            raise StoreTimeoutError(detail=f"{operation}: connection pool timeout") from exc
        except sa_exc.OperationalError as exc:
            self.db.rollback()
            if _is_timeout(exc):
                raise StoreTimeoutError(detail=f"{operation}: {exc.orig}") from exc
            raise StoreUnavailableError(detail=f"{operation}: {exc.orig}") from exc
        except sa_exc.SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreUnavailableError(detail=f"{operation}: {exc}") from exc
