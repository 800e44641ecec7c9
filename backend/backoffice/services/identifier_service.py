# Overview: Service-layer operations for human-readable identifiers; encapsulates atomic sequence allocation.

from __future__ import annotations

from datetime import datetime
from typing import Callable, Iterable

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import IdentifierSequence, Bill, Product, Category, Lot, StockAudit
from ..time_utils import utcnow, compact_date, dashed_date

"""
Identifier Invariants (authoritative)

- Every identifier comes from an atomic UPDATE ... SET next_value = next_value + 1
  on its scope row, or an insert when the scope is new. Never read-then-format.
- Allocation shares the caller's transaction: if the surrounding operation
  rolls back, so does the counter.
- A scope that has no counter row yet is seeded once from identifiers already
  on file; from then on the counter is authoritative.
- Minted SKUs and dated numbers are re-checked for existence and bumped on
  collision (hand-entered data can occupy a slot).
"""

SKU_SEQUENCE_WIDTH = 6
BILL_SEQUENCE_WIDTH = 3
DATED_SUFFIX_WIDTH = 3


def _max_suffix(values: Iterable[str], prefix: str) -> int:
    """Largest numeric suffix among identifiers of the form <prefix><digits>."""
    highest = 0
    for value in values:
        if not value or not value.startswith(prefix):
            continue
        tail = value[len(prefix):]
        if tail.isdigit():
            highest = max(highest, int(tail))
    return highest


def allocate(scope: str, *, seed: Callable[[], int] | None = None) -> int:
    """
    Atomically allocate the next value for a scope.

    `seed` returns the highest value already in use for a brand-new scope; the
    first allocation then returns seed() + 1.
    """
    stmt = (
        update(IdentifierSequence)
        .where(IdentifierSequence.scope == scope)
        .values(next_value=IdentifierSequence.next_value + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        start = (seed() if seed else 0) + 1
        try:
            with db.session.begin_nested():
                db.session.add(IdentifierSequence(scope=scope, next_value=start + 1))
            return start
        except IntegrityError:
            # Another transaction created the scope row first
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    current = (
        db.session.query(IdentifierSequence.next_value)
        .filter_by(scope=scope)
        .scalar()
    )
    return current - 1


# =============================================================================
# BILL NUMBERS
# =============================================================================

def next_bill_number(now: datetime | None = None) -> str:
    """BILL-YYYYMMDD-001, sequence scoped to the calendar day."""
    day = compact_date(now or utcnow())
    prefix = f"BILL-{day}-"

    def _seed() -> int:
        rows = db.session.query(Bill.bill_number).filter(Bill.bill_number.like(f"{prefix}%")).all()
        return _max_suffix((r[0] for r in rows), prefix)

    seq = allocate(f"BILL:{day}", seed=_seed)
    return f"{prefix}{seq:0{BILL_SEQUENCE_WIDTH}d}"


# =============================================================================
# SKUs
# =============================================================================

def _sku_taken(sku: str) -> bool:
    return db.session.query(Product.id).filter(Product.sku == sku).first() is not None


def _mint_sku(scope: str, prefix: str) -> str:
    def _seed() -> int:
        rows = db.session.query(Product.sku).filter(Product.sku.like(f"{prefix}%")).all()
        return _max_suffix((r[0] for r in rows), prefix)

    while True:
        seq = allocate(scope, seed=_seed)
        sku = f"{prefix}{seq:0{SKU_SEQUENCE_WIDTH}d}"
        if not _sku_taken(sku):
            return sku


def next_category_sku(category: Category) -> str:
    """<SKU_PREFIX>-<CATEGORY_CODE>-000001"""
    sku_prefix = current_app.config.get("SKU_PREFIX", "LP")
    return _mint_sku(f"SKU:CAT:{category.code}", f"{sku_prefix}-{category.code}-")


def next_product_code_sku(product_code: str, category: Category) -> str:
    """<PRODUCT_CODE>-<CATEGORY_CODE>-000001, used by bulk import."""
    code = product_code.strip().upper()
    return _mint_sku(f"SKU:CODE:{code}:{category.code}", f"{code}-{category.code}-")


# =============================================================================
# LOT AND AUDIT NUMBERS
# =============================================================================

def _next_dated_number(prefix: str, column, now: datetime | None) -> str:
    """
    <PREFIX>-YYYY-MM-DD for the first of the day, then -001, -002, ...

    Allocation n maps to the bare number for n == 1 and suffix n - 1 after.
    """
    day = dashed_date(now or utcnow())
    base = f"{prefix}-{day}"

    def _format(n: int) -> str:
        if n <= 1:
            return base
        return f"{base}-{n - 1:0{DATED_SUFFIX_WIDTH}d}"

    def _taken(value: str) -> bool:
        return db.session.query(column).filter(column == value).first() is not None

    def _seed() -> int:
        rows = [r[0] for r in db.session.query(column).filter(column.like(f"{base}%")).all()]
        if not rows:
            return 0
        highest = _max_suffix(rows, f"{base}-")
        return highest + 1 if (base in rows or highest) else 0

    while True:
        candidate = _format(allocate(f"{prefix}:{day}", seed=_seed))
        if not _taken(candidate):
            return candidate


def next_lot_number(now: datetime | None = None) -> str:
    return _next_dated_number("LOT", Lot.lot_number, now)


def next_audit_number(now: datetime | None = None) -> str:
    return _next_dated_number("AUDIT", StockAudit.audit_number, now)
