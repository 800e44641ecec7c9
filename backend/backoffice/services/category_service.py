# Overview: Service-layer operations for product categories.

from __future__ import annotations

import re

from sqlalchemy import func

from ..extensions import db
from ..models import Category
from ..validation import ValidationError, ConflictError, NotFoundError, require_text, optional_text

CATEGORY_CODE_RE = re.compile(r"^[A-Z0-9]{2,6}$")
FALLBACK_CATEGORY_CODE = "CAT01"


def find_category_by_name(name: str | None) -> Category | None:
    """Case-insensitive exact name match."""
    if not name or not name.strip():
        return None
    return (
        db.session.query(Category)
        .filter(func.lower(Category.name) == name.strip().lower())
        .first()
    )


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if not category:
        raise NotFoundError(f"Category {category_id} not found")
    return category


def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.name.asc()).all()


def _code_taken(code: str) -> bool:
    return db.session.query(Category.id).filter(Category.code == code).first() is not None


def derive_category_code(name: str) -> str:
    """
    First six alphanumerics of the name, uppercased.

    Names with fewer than two usable characters fall back to CAT01. On a
    collision the tail is replaced with a counter (SAREE -> SARE1 ... SAR10).
    """
    base = re.sub(r"[^A-Z0-9]", "", name.upper())[:6]
    if len(base) < 2:
        base = FALLBACK_CATEGORY_CODE
    if not _code_taken(base):
        return base

    n = 1
    while True:
        suffix = str(n)
        candidate = f"{base[:6 - len(suffix)]}{suffix}"
        if len(candidate) >= 2 and not _code_taken(candidate):
            return candidate
        n += 1


def create_category(*, name: str, code: str | None = None, description: str | None = None) -> Category:
    """
    Add a category. Flushes but does not commit; the caller owns the transaction.
    """
    name = require_text(name, "name", max_length=128)
    if find_category_by_name(name):
        raise ConflictError(f"Category '{name}' already exists")

    if code:
        code = code.strip().upper()
        if not CATEGORY_CODE_RE.match(code):
            raise ValidationError("Category code must be 2-6 uppercase letters or digits")
        if _code_taken(code):
            raise ConflictError(f"Category code '{code}' already exists")
    else:
        code = derive_category_code(name)

    category = Category(name=name, code=code, description=optional_text(description))
    db.session.add(category)
    db.session.flush()
    return category


def resolve_or_create_category(name: str) -> tuple[Category, bool]:
    """Match by name (case-insensitive), else create. Returns (category, created)."""
    existing = find_category_by_name(name)
    if existing:
        return existing, False
    return create_category(name=name), True
