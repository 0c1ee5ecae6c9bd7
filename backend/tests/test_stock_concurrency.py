"""
Concurrent stock writes against a file-backed database.

Each worker thread runs its own app context and session, so the
conditional UPDATEs race for real instead of sharing one connection.
"""

import threading

import pytest

from salonerp import create_app
from salonerp.context import SYSTEM_CONTEXT
from salonerp.extensions import db
from salonerp.models import Location, Product, ProductLocation, InventoryAudit
from salonerp.services import inventory_service
from salonerp.services.inventory_service import InsufficientStockError


@pytest.fixture
def ledger_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'ledger.db'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {"connect_args": {"timeout": 30}},
        'ALLOW_NEGATIVE_STOCK': False,
    })
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def seeded(ledger_app):
    """Two branches and one product; returns ids."""
    with ledger_app.app_context():
        downtown = Location(name="Downtown Salon", kind="branch", is_active=True)
        uptown = Location(name="Uptown Salon", kind="branch", is_active=True)
        product = Product(sku="SH-001", name="Shampoo", price_cents=1250)
        db.session.add_all([downtown, uptown, product])
        db.session.commit()
        ids = {"product": product.id, "downtown": downtown.id, "uptown": uptown.id}
        db.session.remove()
    return ids


def _seed_stock(app, product_id, location_id, stock):
    with app.app_context():
        db.session.add(ProductLocation(product_id=product_id, location_id=location_id, stock=stock))
        db.session.commit()
        db.session.remove()


def _read_stock(app, product_id, location_id):
    with app.app_context():
        value = inventory_service.get_stock(product_id, location_id)
        db.session.remove()
        return value


def _run_parallel(app, count, work):
    """Run work() in `count` threads released together; returns (succeeded, refused, errors)."""
    barrier = threading.Barrier(count)
    lock = threading.Lock()
    outcome = {"succeeded": 0, "refused": 0, "errors": []}

    def worker(index):
        barrier.wait()
        with app.app_context():
            try:
                work(index)
                with lock:
                    outcome["succeeded"] += 1
            except InsufficientStockError:
                with lock:
                    outcome["refused"] += 1
            except Exception as exc:
                with lock:
                    outcome["errors"].append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    return outcome["succeeded"], outcome["refused"], outcome["errors"]


def test_parallel_removals_never_oversell(ledger_app, seeded):
    product_id, location_id = seeded["product"], seeded["downtown"]
    _seed_stock(ledger_app, product_id, location_id, 10)

    def remove_one(_):
        inventory_service.adjust_stock(
            SYSTEM_CONTEXT,
            product_id=product_id,
            location_id=location_id,
            adjustment_type="remove",
            quantity=1,
            reason="Retail sale",
        )

    succeeded, refused, errors = _run_parallel(ledger_app, 20, remove_one)

    assert errors == []
    assert succeeded == 10
    assert refused == 10
    assert _read_stock(ledger_app, product_id, location_id) == 0
    with ledger_app.app_context():
        assert db.session.query(InventoryAudit).count() == 10


def test_parallel_transfers_conserve_stock(ledger_app, seeded):
    product_id = seeded["product"]
    _seed_stock(ledger_app, product_id, seeded["downtown"], 10)
    _seed_stock(ledger_app, product_id, seeded["uptown"], 0)

    def transfer_one(_):
        inventory_service.transfer_stock(
            SYSTEM_CONTEXT,
            product_id=product_id,
            from_location_id=seeded["downtown"],
            to_location_id=seeded["uptown"],
            quantity=1,
        )

    succeeded, refused, errors = _run_parallel(ledger_app, 15, transfer_one)

    assert errors == []
    assert succeeded == 10
    assert refused == 5
    assert _read_stock(ledger_app, product_id, seeded["downtown"]) == 0
    assert _read_stock(ledger_app, product_id, seeded["uptown"]) == 10


def test_parallel_mixed_adjustments_match_audit_trail(ledger_app, seeded):
    product_id, location_id = seeded["product"], seeded["downtown"]
    _seed_stock(ledger_app, product_id, location_id, 3)

    def add_or_remove(index):
        inventory_service.adjust_stock(
            SYSTEM_CONTEXT,
            product_id=product_id,
            location_id=location_id,
            adjustment_type="add" if index % 2 else "remove",
            quantity=2,
            reason="Shelf count",
        )

    succeeded, refused, errors = _run_parallel(ledger_app, 16, add_or_remove)

    assert errors == []
    assert succeeded + refused == 16
    final = _read_stock(ledger_app, product_id, location_id)
    assert final >= 0
    with ledger_app.app_context():
        audits = db.session.query(InventoryAudit).all()
        net = sum(a.quantity if a.adjustment_type == "add" else -a.quantity for a in audits)
        assert len(audits) == succeeded
        assert final == 3 + net
