# Overview: Service-layer operations for maintenance; encapsulates business logic and database work.

from __future__ import annotations

from ..extensions import db
from ..models import (
    Location,
    StaffLocation,
    ProductLocation,
    Appointment,
    Transaction,
    Client,
    StockTransfer,
    InventoryAudit,
)
from .concurrency import run_with_retry
from .location_service import normalize_location_name


def find_duplicate_locations() -> list[tuple[Location, list[Location]]]:
    """
    Group active locations by normalized name.

    Returns (keeper, duplicates) pairs; the keeper is the oldest row.
    """
    groups: dict[str, list[Location]] = {}
    active = (
        db.session.query(Location)
        .filter(Location.is_active.is_(True))
        .order_by(Location.created_at.asc(), Location.id.asc())
        .all()
    )
    for location in active:
        groups.setdefault(normalize_location_name(location.name), []).append(location)
    return [(rows[0], rows[1:]) for rows in groups.values() if len(rows) > 1]


def _merge_staff_links(keeper_id: int, duplicate_id: int) -> int:
    kept = {
        link.staff_id: link
        for link in db.session.query(StaffLocation).filter_by(location_id=keeper_id).all()
    }
    moved = 0
    for link in db.session.query(StaffLocation).filter_by(location_id=duplicate_id).all():
        existing = kept.get(link.staff_id)
        if existing is None:
            link.location_id = keeper_id
            kept[link.staff_id] = link
        else:
            existing.is_active = existing.is_active or link.is_active
            db.session.delete(link)
        moved += 1
    return moved


def _merge_stock_rows(keeper_id: int, duplicate_id: int) -> int:
    kept = {
        row.product_id: row
        for row in db.session.query(ProductLocation).filter_by(location_id=keeper_id).all()
    }
    moved = 0
    for row in db.session.query(ProductLocation).filter_by(location_id=duplicate_id).all():
        existing = kept.get(row.product_id)
        if existing is None:
            row.location_id = keeper_id
            kept[row.product_id] = row
        else:
            existing.stock = ProductLocation.stock + row.stock
            db.session.delete(row)
        moved += 1
    return moved


def _repoint(keeper_id: int, duplicate_id: int) -> dict:
    def _move(column) -> int:
        return db.session.query(column.class_).filter(column == duplicate_id).update(
            {column: keeper_id},
            synchronize_session=False,
        )

    return {
        "appointments": _move(Appointment.location_id),
        "sales": _move(Transaction.location_id),
        "clients": _move(Client.preferred_location_id),
        "transfers": _move(StockTransfer.from_location_id) + _move(StockTransfer.to_location_id),
        "audits": _move(InventoryAudit.location_id),
    }


def dedupe_locations(*, dry_run: bool = False) -> dict:
    """
    Merge active locations that share a normalized name into the oldest one.

    Staff assignments are moved (or merged), stock rows for the same
    product are summed, and every other reference is repointed before the
    duplicate rows are deleted. With dry_run nothing is written.
    """
    def _op():
        merged = []
        for keeper, duplicates in find_duplicate_locations():
            entry = {
                "name": keeper.name,
                "kept_id": keeper.id,
                "removed_ids": [d.id for d in duplicates],
            }
            if not dry_run:
                moved = {"staff": 0, "stock_rows": 0}
                for duplicate in duplicates:
                    moved["staff"] += _merge_staff_links(keeper.id, duplicate.id)
                    moved["stock_rows"] += _merge_stock_rows(keeper.id, duplicate.id)
                    db.session.flush()
                    for key, count in _repoint(keeper.id, duplicate.id).items():
                        moved[key] = moved.get(key, 0) + count
                    db.session.delete(duplicate)
                entry["moved"] = moved
            merged.append(entry)

        if not dry_run:
            db.session.commit()

        return {
            "dry_run": dry_run,
            "groups": merged,
            "removed_count": sum(len(m["removed_ids"]) for m in merged),
        }

    return run_with_retry(_op)
