"""Transaction context manager for safe database writes.

Every shared-row mutation (pending grab replace, download transition,
quality status upsert, default preset switch) runs inside one of these so
that two concurrent scheduler passes never observe a half-applied change.

Nested ``transaction()`` blocks join the outermost one; repositories check
``in_transaction()`` and skip their own commit while a block is open.
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from error_handler import DatabaseError
from extensions import db

logger = logging.getLogger(__name__)

_DEPTH_KEY = "grabarr_tx_depth"

# DatabaseError code for a constraint violation
INTEGRITY_CODE = "DB_002"


def in_transaction() -> bool:
    """True while a transaction() block is open on the current session."""
    return db.session.info.get(_DEPTH_KEY, 0) > 0


@contextmanager
def transaction() -> Generator:
    """Execute database writes inside a single SQLAlchemy transaction.

    Usage::

        with transaction() as session:
            session.add(row)

    Yields:
        The Flask-SQLAlchemy scoped session.

    Raises:
        DatabaseError: If SQLAlchemy fails; the transaction is rolled back.
        Any other exception raised by the block propagates after rollback.
    """
    session = db.session
    depth = session.info.get(_DEPTH_KEY, 0)
    session.info[_DEPTH_KEY] = depth + 1
    outermost = depth == 0
    try:
        yield session
        if outermost:
            session.commit()
    except IntegrityError as exc:
        if outermost:
            session.rollback()
            logger.warning("Transaction rolled back (integrity): %s", exc)
        raise DatabaseError(
            str(exc.orig) if exc.orig else str(exc),
            code=INTEGRITY_CODE,
            context={"sqlalchemy_error": type(exc).__name__},
        ) from exc
    except SQLAlchemyError as exc:
        if outermost:
            session.rollback()
            logger.error("Transaction rolled back (sqlalchemy): %s", exc)
        raise DatabaseError(str(exc), context={"sqlalchemy_error": type(exc).__name__}) from exc
    except Exception as exc:
        if outermost:
            session.rollback()
            logger.error("Transaction rolled back: %s", exc)
        raise
    finally:
        session.info[_DEPTH_KEY] = depth
