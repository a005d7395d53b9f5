"""
Human-readable reference numbers for receipts, batches and board references.

Two candidate shapes:

* ``<PREFIX>-<yyyyMMdd-HHmmss>-<NNN>`` where NNN mixes a nanosecond clock
  reading with a random offset (worker receipts, employer receipts, batches).
* ``<PREFIX>-<yyyyMMdd>-<NNN>`` where NNN comes from a per-day counter row
  (board references).

Both are checked by lookup and retried a bounded number of times; uniqueness
is finally enforced by the unique constraint on the owning table.
"""
from __future__ import annotations

import logging
import random
import time
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import BigInteger, Column, Integer, String
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.database import Base, utcnow
from app.errors import GenerationExhaustedError

logger = logging.getLogger(__name__)

RECEIPT_PREFIX = "RCP"
EMPLOYER_RECEIPT_PREFIX = "EMP"
BOARD_RECEIPT_PREFIX = "BRD"
BATCH_PREFIX = "UPL"


class SequenceCounterModel(Base):
    """Named monotonic counter, one row per sequence."""
    __tablename__ = "sequence_counters"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(64), nullable=False, unique=True)
    current_value = Column(BigInteger, nullable=False, default=0)


# ---------------------------------------------------------------------------
# Candidates
# ---------------------------------------------------------------------------

def timestamp_candidate(
    prefix: str,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> str:
    now = now or utcnow()
    rng = rng or random
    stamp = now.strftime("%Y%m%d-%H%M%S")
    sequence = (time.monotonic_ns() % 1000 + rng.randint(0, 999)) % 1000
    return f"{prefix}-{stamp}-{sequence:03d}"


def next_sequence_value(db: Session, name: str) -> int:
    """Increment and return the counter ``name``; first use returns 1."""
    counter = (
        db.query(SequenceCounterModel)
        .filter(SequenceCounterModel.name == name)
        .with_for_update()
        .first()
    )
    if counter is None:
        savepoint = db.begin_nested()
        try:
            counter = SequenceCounterModel(name=name, current_value=1)
            db.add(counter)
            db.flush()
            savepoint.commit()
            return 1
        except IntegrityError:
            # another session created the row first
            savepoint.rollback()
            counter = (
                db.query(SequenceCounterModel)
                .filter(SequenceCounterModel.name == name)
                .with_for_update()
                .one()
            )

    counter.current_value += 1
    db.flush()
    return counter.current_value


def daily_sequence_candidate(db: Session, prefix: str, now: Optional[datetime] = None) -> str:
    day = (now or utcnow()).strftime("%Y%m%d")
    value = next_sequence_value(db, f"{prefix}:{day}")
    return f"{prefix}-{day}-{value:03d}"


# ---------------------------------------------------------------------------
# Bounded retry
# ---------------------------------------------------------------------------

def generate_unique_number(
    prefix: str,
    candidate: Callable[[], str],
    exists: Callable[[str], bool],
    max_attempts: Optional[int] = None,
    backoff_seconds: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Draw candidates until one is unused.

    Raises ``GenerationExhaustedError`` after ``max_attempts`` collisions.
    """
    if max_attempts is None:
        max_attempts = settings.RECEIPT_NUMBER_MAX_ATTEMPTS
    if backoff_seconds is None:
        backoff_seconds = settings.RECEIPT_NUMBER_BACKOFF_SECONDS

    for attempt in range(1, max_attempts + 1):
        number = candidate()
        if not exists(number):
            logger.info("Generated unique %s number: %s (attempt %d)", prefix, number, attempt)
            return number
        logger.warning("%s number %s already exists, retrying (attempt %d)", prefix, number, attempt)
        if backoff_seconds and attempt < max_attempts:
            sleep(backoff_seconds * attempt)

    logger.error("Gave up generating a %s number after %d attempts", prefix, max_attempts)
    raise GenerationExhaustedError(prefix, max_attempts)
