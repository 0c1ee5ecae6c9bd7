from __future__ import annotations

from sqlalchemy import func

from salonerp.extensions import db
from salonerp.context import RequestContext
from salonerp.models import Location, StaffLocation, ProductLocation, Appointment
from salonerp.models.locations import LOCATION_KINDS
from salonerp.services.concurrency import lock_for_update, run_with_retry
from salonerp.validation import ValidationError, NotFoundError, ConflictError


class DuplicateLocationError(ConflictError):
    """An active location with the same name already exists."""


def normalize_location_name(name: str) -> str:
    return " ".join(name.split()).lower()


def _find_active_by_name(name: str, *, exclude_id: int | None = None) -> Location | None:
    q = db.session.query(Location).filter(
        Location.is_active.is_(True),
        func.lower(Location.name) == normalize_location_name(name),
    )
    if exclude_id is not None:
        q = q.filter(Location.id != exclude_id)
    return q.first()


def _check_kind(kind: str | None) -> None:
    if kind is not None and kind not in LOCATION_KINDS:
        raise ValidationError(f"kind must be one of: {', '.join(sorted(LOCATION_KINDS))}")


def get_location(location_id: int) -> Location:
    location = db.session.query(Location).filter_by(id=location_id).first()
    if location is None:
        raise NotFoundError("Location not found")
    return location


def get_active_location(location_id: int, *, label: str = "Location") -> Location:
    location = db.session.query(Location).filter_by(id=location_id).first()
    if location is None:
        raise NotFoundError(f"{label} not found")
    if not location.is_active:
        raise ValidationError(f"{label} is inactive")
    return location


def list_locations(ctx: RequestContext, *, include_inactive: bool = False) -> list[Location]:
    q = db.session.query(Location)
    if not include_inactive:
        q = q.filter(Location.is_active.is_(True))
    q = ctx.filter_by_location(q, Location.id)
    return q.order_by(Location.name.asc(), Location.id.asc()).all()


def create_location(patch: dict) -> Location:
    if patch.get("name"):
        patch = {**patch, "name": " ".join(patch["name"].split())}

    def _op():
        _check_kind(patch.get("kind"))
        if _find_active_by_name(patch["name"]) is not None:
            raise DuplicateLocationError(f"Location '{patch['name']}' already exists")

        location = Location(**patch)
        db.session.add(location)
        db.session.commit()
        return location

    return run_with_retry(_op)


def update_location(location_id: int, patch: dict) -> Location:
    if patch.get("name"):
        patch = {**patch, "name": " ".join(patch["name"].split())}

    def _op():
        location = lock_for_update(db.session.query(Location).filter_by(id=location_id)).first()
        if location is None:
            raise NotFoundError("Location not found")

        _check_kind(patch.get("kind"))
        if patch.get("is_active", location.is_active):
            name = patch.get("name") or location.name
            if _find_active_by_name(name, exclude_id=location.id) is not None:
                raise DuplicateLocationError(f"Location '{name}' already exists")

        for key, value in patch.items():
            setattr(location, key, value)

        db.session.commit()
        return location

    return run_with_retry(_op)


def location_dependencies(location_id: int) -> dict:
    return {
        "staff": db.session.query(StaffLocation).filter_by(location_id=location_id, is_active=True).count(),
        "appointments": db.session.query(Appointment).filter_by(location_id=location_id).count(),
        "products": db.session.query(ProductLocation).filter_by(location_id=location_id).count(),
    }


def deactivate_location(location_id: int) -> tuple[Location, dict]:
    """
    Soft-delete a location.

    Rows that reference the location are kept; the returned summary tells
    the operator what still points at it.
    """
    def _op():
        location = lock_for_update(db.session.query(Location).filter_by(id=location_id)).first()
        if location is None:
            raise NotFoundError("Location not found")

        dependencies = location_dependencies(location_id)
        location.is_active = False
        db.session.commit()
        return location, dependencies

    return run_with_retry(_op)
