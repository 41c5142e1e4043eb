"""Human-readable sequential ids for forms and submissions.

Each sequence has one row in ``id_counters``. The row is locked while it is
incremented, so concurrent writers queue up instead of reading the same
maximum.
"""

import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from formflow.db.models import IdCounter

logger = logging.getLogger(__name__)

FORM_SEQUENCE = "form"
SUBMISSION_SEQUENCE = "submission"


def next_number(db: Session, name: str, column) -> int:
    """
    Reserve the next number of a sequence.

    A missing counter row is seeded from the current maximum of ``column``.

    Args:
        db: Database session; the reservation commits or rolls back with it
        name: Sequence name
        column: Mapped column already holding numbers of this sequence
    """
    counter = db.query(IdCounter).filter(IdCounter.name == name).with_for_update().first()
    if counter is None:
        current = db.query(func.max(column)).scalar() or 0
        logger.info("Seeding %s counter at %d", name, current)
        counter = IdCounter(name=name, value=current)
        db.add(counter)

    counter.value += 1
    db.flush()
    return counter.value
