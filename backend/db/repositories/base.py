"""Shared plumbing for the repositories.

Rows leave a repository as plain dicts: Integer flag columns become bools
and JSON text columns become lists, so callers never see storage encoding.
"""

import json
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta

from extensions import db
from transaction_manager import in_transaction


class BaseRepository:
    """Session access, commit policy and row conversion.

    Writes commit immediately unless the repository is in batch mode or an
    enclosing ``transaction_manager.transaction()`` block owns the commit.
    """

    # Integer 0/1 columns returned as bool by _to_dict
    flag_columns: tuple[str, ...] = ()
    # JSON text columns returned as lists/dicts by _to_dict
    json_columns: tuple[str, ...] = ()

    def __init__(self):
        self._batch_mode = False

    @property
    def session(self):
        """Return the Flask-SQLAlchemy scoped session."""
        return db.session

    def _commit(self):
        """Commit the current session unless a larger unit of work owns it."""
        if self._batch_mode or in_transaction():
            self.session.flush()
            return
        self.session.commit()

    @contextmanager
    def batch(self):
        """Group several writes of this repository into one commit.

        Usage:
            with repo.batch():
                repo.add_entry(...)
                repo.add_entry(...)
        """
        self._batch_mode = True
        try:
            yield self
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        finally:
            self._batch_mode = False

    def _to_dict(self, model_instance, columns=None):
        """Convert a model instance to a dict, decoding flag and JSON columns."""
        if model_instance is None:
            return None
        if columns is None:
            columns = [c.key for c in model_instance.__table__.columns]
        result = {}
        for col in columns:
            value = getattr(model_instance, col)
            if col in self.flag_columns:
                value = bool(value)
            elif col in self.json_columns:
                value = _load_json(value)
            result[col] = value
        return result

    def _now(self) -> str:
        """Return current UTC time as ISO format string."""
        return datetime.now(UTC).isoformat()

    def _from_now(self, **delta) -> str:
        """ISO timestamp offset from now, e.g. _from_now(minutes=30)."""
        return (datetime.now(UTC) + timedelta(**delta)).isoformat()

    @staticmethod
    def _dump_json(value) -> str:
        if isinstance(value, set):
            value = sorted(value)
        return json.dumps(value if value is not None else [])


def _load_json(value):
    if value in (None, ""):
        return []
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        return []
