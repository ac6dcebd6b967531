"""Compare-and-set on a single row.

Every state change in the booking core is an ``UPDATE ... WHERE id = ? AND
<expected prior state>``; the affected row count tells whether this caller won.
There is no retry: the loser gets ``None`` and raises its own domain error.
"""
import logging

from sqlalchemy.orm import Session

from ..core.clock import utcnow

logger = logging.getLogger(__name__)


def _conditions(model, ident, expected: dict):
    conds = [model.id == ident]
    for column, value in expected.items():
        attr = getattr(model, column)
        conds.append(attr.is_(None) if value is None else attr == value)
    return conds


def try_transition(db: Session, model, ident, *, expected: dict, patch: dict, now=None):
    """Apply ``patch`` to row ``ident`` only if it still matches ``expected``.

    Stamps ``updated_at``. Returns the refreshed row, or ``None`` when zero rows
    matched (row missing or state already moved on). Does not commit.
    """
    values = dict(patch)
    values.setdefault("updated_at", now or utcnow())

    affected = (
        db.query(model)
        .filter(*_conditions(model, ident, expected))
        .update(values, synchronize_session=False)
    )
    if not affected:
        logger.debug("transition lost: %s id=%s expected=%s", model.__tablename__, ident, expected)
        return None
    return db.get(model, ident, populate_existing=True)
