# Overview: Service-layer operations for the fitting service catalogue.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import FittingService
from ..validation import (
    ValidationError,
    ConflictError,
    NotFoundError,
    to_bool,
    to_cents,
    to_int,
    require_text,
    optional_text,
    validate_price_cents,
)

FITTING_FIELDS = ("service_name", "description", "unit", "rate_cents", "is_active")


def _name_taken(name: str, *, exclude_id: int | None = None) -> bool:
    query = db.session.query(FittingService.id).filter(func.lower(FittingService.service_name) == name.lower())
    if exclude_id is not None:
        query = query.filter(FittingService.id != exclude_id)
    return query.first() is not None


def _validate(data: dict, *, creating: bool) -> dict:
    patch: dict = {}
    if creating or "service_name" in data:
        patch["service_name"] = require_text(data.get("service_name"), "service_name", max_length=255)
    if "description" in data:
        patch["description"] = optional_text(data.get("description"))
    if creating or "unit" in data:
        patch["unit"] = optional_text(data.get("unit")) or "item"

    if "rate_cents" in data:
        patch["rate_cents"] = to_int(data.get("rate_cents"), "rate_cents")
    elif "rate" in data:
        patch["rate_cents"] = to_cents(data.get("rate"), "rate")
    if creating and patch.get("rate_cents") is None:
        raise ValidationError("rate_cents is required")
    if "rate_cents" in patch:
        if patch["rate_cents"] is None:
            raise ValidationError("rate_cents is required")
        validate_price_cents(patch["rate_cents"], "rate_cents")

    if "is_active" in data:
        patch["is_active"] = to_bool(data.get("is_active"), "is_active")
    elif creating:
        patch["is_active"] = True
    return patch


def get_fitting(fitting_id: int) -> FittingService:
    fitting = db.session.get(FittingService, fitting_id)
    if not fitting:
        raise NotFoundError(f"Fitting service {fitting_id} not found")
    return fitting


def list_fittings(*, active_only: bool = False) -> list[FittingService]:
    query = db.session.query(FittingService)
    if active_only:
        query = query.filter(FittingService.is_active.is_(True))
    return query.order_by(FittingService.service_name.asc()).all()


def create_fitting(*, data: dict, user_id: int | None = None) -> FittingService:
    patch = _validate(data, creating=True)
    if _name_taken(patch["service_name"]):
        raise ConflictError(f"Fitting service '{patch['service_name']}' already exists")

    fitting = FittingService(created_by_user_id=user_id, **patch)
    db.session.add(fitting)
    db.session.commit()
    current_app.logger.info("Fitting service created name=%s rate=%s", fitting.service_name, fitting.rate_cents)
    return fitting


def update_fitting(fitting_id: int, data: dict) -> FittingService:
    fitting = get_fitting(fitting_id)
    patch = _validate(data, creating=False)
    if "service_name" in patch and _name_taken(patch["service_name"], exclude_id=fitting.id):
        raise ConflictError(f"Fitting service '{patch['service_name']}' already exists")

    for key, value in patch.items():
        if key in FITTING_FIELDS:
            setattr(fitting, key, value)
    db.session.commit()
    return fitting


def delete_fitting(fitting_id: int) -> None:
    """Bills keep their own charge snapshot, so removal never touches history."""
    fitting = get_fitting(fitting_id)
    db.session.delete(fitting)
    db.session.commit()
    current_app.logger.info("Fitting service deleted id=%s", fitting_id)
