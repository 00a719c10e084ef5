"""
Company Portal
Sequential ID allocator.

Hands out human-facing request numbers from a named counter row in
``sequence_counters``. The increment is a single
``UPDATE ... SET current_number = current_number + 1 RETURNING`` statement,
so two concurrent submissions can never read the same value.

Nothing is committed here: the caller commits the counter bump together
with the row that consumes the number, which keeps request creation
all-or-nothing. A rolled-back transaction may leave a gap, which is fine.
"""

from __future__ import annotations

import logging

from sqlalchemy import insert, update
from sqlalchemy.dialects import postgresql, sqlite

from portal.models import db
from portal.models.workflow import SequenceCounter

logger = logging.getLogger(__name__)


def _ensure_counter_row(counter_key: str) -> None:
    """Create the counter row at zero unless it already exists.

    Uses the dialect's ``ON CONFLICT DO NOTHING`` where available so two
    first-ever submissions cannot both try to create the row.
    """
    dialect = db.session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(SequenceCounter).values(key=counter_key, current_number=0)
    elif dialect == "sqlite":
        stmt = sqlite.insert(SequenceCounter).values(key=counter_key, current_number=0)
    else:
        if db.session.get(SequenceCounter, counter_key) is None:
            db.session.execute(insert(SequenceCounter).values(key=counter_key, current_number=0))
        return
    db.session.execute(stmt.on_conflict_do_nothing(index_elements=["key"]))


def next_id(counter_key: str) -> int:
    """Atomically increment *counter_key* and return the new value.

    The first value ever handed out for a key is 1. Database errors
    propagate unchanged; the caller's transaction is then unusable and must
    be rolled back.
    """
    _ensure_counter_row(counter_key)
    stmt = (
        update(SequenceCounter)
        .where(SequenceCounter.key == counter_key)
        .values(current_number=SequenceCounter.current_number + 1)
        .returning(SequenceCounter.current_number)
        .execution_options(synchronize_session=False)
    )
    value = db.session.execute(stmt).scalar_one()
    logger.debug("Sequence %s advanced to %d", counter_key, value)
    return value


def current_value(counter_key: str) -> int:
    """Return the last number handed out for *counter_key* (0 if unused)."""
    row = db.session.get(SequenceCounter, counter_key)
    return row.current_number if row else 0


def format_request_id(number: int, width: int = 4) -> str:
    """Zero-pad *number* to *width* digits (wider numbers are kept intact)."""
    return str(number).zfill(width)
