"""
Purchase order numbering.

Numbers look like ``PO-2026-00042``: one zero-padded sequence per calendar
year. The next number is derived from the last one in use, and the UNIQUE
constraint on ``purchase_orders.po_number`` decides who wins when two
callers derive the same number. The loser's unit of work is rolled back and
replayed with a fresh number.
"""
from __future__ import annotations

import logging
import re
from datetime import date
from typing import Callable, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backoffice.app.core.config import settings
from backoffice.app.core.exceptions import NumberingError
from backoffice.app.db.models.models_v1 import PurchaseOrder

logger = logging.getLogger(__name__)

T = TypeVar("T")

SEQUENCE_WIDTH = 5
MAX_SEQUENCE = 10**SEQUENCE_WIDTH - 1

_TRAILING_DIGITS = re.compile(r"(\d+)$")


def po_prefix(year: int) -> str:
    return f"PO-{year}-"


def format_po_number(year: int, sequence: int) -> str:
    return f"{po_prefix(year)}{sequence:0{SEQUENCE_WIDTH}d}"


def parse_po_sequence(po_number: str) -> int:
    match = _TRAILING_DIGITS.search(po_number or "")
    return int(match.group(1)) if match else 0


def next_po_number(db: Session, year: int | None = None) -> str:
    year = year or date.today().year
    prefix = po_prefix(year)

    last = db.execute(
        select(PurchaseOrder.po_number)
        .where(PurchaseOrder.po_number.like(f"{prefix}%"))
        .order_by(PurchaseOrder.po_number.desc())
        .limit(1)
    ).scalar_one_or_none()

    sequence = parse_po_sequence(last) + 1 if last else 1
    if sequence > MAX_SEQUENCE:
        raise NumberingError(f"Purchase order numbers for {year} are exhausted")
    return format_po_number(year, sequence)


def _po_number_taken(db: Session, po_number: str) -> bool:
    return db.execute(
        select(PurchaseOrder.id).where(PurchaseOrder.po_number == po_number)
    ).first() is not None


def insert_with_po_number(
    db: Session,
    insert: Callable[[str], T],
    *,
    year: int | None = None,
    max_attempts: int | None = None,
) -> T:
    """
    Call ``insert(po_number)`` until it commits with a number nobody else took.

    ``insert`` must run its own unit of work, so that a unique violation
    leaves the session rolled back and clean for the next attempt. Integrity
    errors that are not a numbering collision are re-raised.
    """
    max_attempts = max_attempts or settings.po_number_max_attempts

    for attempt in range(1, max_attempts + 1):
        po_number = next_po_number(db, year)
        try:
            return insert(po_number)
        except IntegrityError:
            if not _po_number_taken(db, po_number):
                raise
            logger.warning(
                "PO number %s taken by a concurrent order (attempt %d/%d), retrying",
                po_number, attempt, max_attempts,
            )

    raise NumberingError(f"Could not allocate a purchase order number after {max_attempts} attempts")
