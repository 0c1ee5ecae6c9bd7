# Overview: Service-layer operations for the service catalog (categories and bookable services).

from __future__ import annotations

from ..extensions import db
from ..models import ServiceCategory, Service
from salonerp.validation import NotFoundError, ConflictError, enforce_rules_service
from .concurrency import run_with_retry


def get_category(category_id: int) -> ServiceCategory:
    category = db.session.query(ServiceCategory).filter_by(id=category_id).first()
    if category is None:
        raise NotFoundError("Service category not found")
    return category


def list_categories() -> list[ServiceCategory]:
    return db.session.query(ServiceCategory).order_by(ServiceCategory.name.asc()).all()


def create_category(patch: dict) -> ServiceCategory:
    def _op():
        existing = db.session.query(ServiceCategory).filter(
            db.func.lower(ServiceCategory.name) == patch["name"].lower()
        ).first()
        if existing is not None:
            raise ConflictError(f"Service category '{patch['name']}' already exists")

        category = ServiceCategory(**patch)
        db.session.add(category)
        db.session.commit()
        return category

    return run_with_retry(_op)


def get_service(service_id: int) -> Service:
    service = db.session.query(Service).filter_by(id=service_id).first()
    if service is None:
        raise NotFoundError("Service not found")
    return service


def list_services(*, category_id: int | None = None, include_inactive: bool = False) -> list[Service]:
    q = db.session.query(Service)
    if category_id is not None:
        q = q.filter(Service.category_id == category_id)
    if not include_inactive:
        q = q.filter(Service.is_active.is_(True))
    return q.order_by(Service.name.asc(), Service.id.asc()).all()


def create_service(patch: dict) -> Service:
    enforce_rules_service(patch)

    def _op():
        if patch.get("category_id") is not None:
            get_category(patch["category_id"])
        service = Service(**patch)
        db.session.add(service)
        db.session.commit()
        return service

    return run_with_retry(_op)
