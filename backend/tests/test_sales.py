"""
Point-of-sale tests: pricing, stock effects and appointment completion.
"""

import pytest

from salonerp.context import SYSTEM_CONTEXT
from salonerp.models import InventoryAudit, Transaction
from salonerp.services import appointment_service, sales_service
from salonerp.services.appointment_service import AppointmentStatusError
from salonerp.services.inventory_service import InsufficientStockError
from salonerp.services.sales_service import percentage_of
from salonerp.time_utils import utcnow
from salonerp.validation import ValidationError


@pytest.mark.parametrize("amount, percentage, expected", [
    (1250, 15, 188),
    (4500, 10, 450),
    (999, 50, 500),
    (1000, 0, 0),
    (1000, 100, 1000),
])
def test_percentage_rounds_half_up(amount, percentage, expected):
    assert percentage_of(amount, percentage) == expected


def _sale(location, items, **extra):
    payload = {
        "location_id": location.id,
        "payment_method": "card",
        "items": items,
    }
    payload.update(extra)
    return sales_service.create_sale(SYSTEM_CONTEXT, payload)


def test_service_sale_discount(db_session, haircut, location_a):
    tx = _sale(location_a, [{"type": "service", "service_id": haircut.id}], discount_percentage=15)

    assert tx.type == "service_sale"
    assert tx.original_service_amount_cents == 4500
    assert tx.discount_amount_cents == 675
    assert tx.service_amount_cents == 3825
    assert tx.total_cents == 3825
    assert tx.reference == f"SALE-{tx.id:06d}"


def test_consolidated_sale_discounts_services_only(
    db_session, haircut, shampoo, location_a, set_stock, stock_of
):
    set_stock(shampoo, location_a, 10)

    tx = _sale(
        location_a,
        [
            {"type": "service", "service_id": haircut.id},
            {"type": "product", "product_id": shampoo.id, "quantity": 2},
        ],
        discount_percentage=10,
    )

    assert tx.type == "consolidated_sale"
    assert tx.service_amount_cents == 4050
    assert tx.product_amount_cents == 2500
    assert tx.total_cents == 6550
    product_line = [item for item in tx.items if item.item_type == "product"][0]
    assert product_line.discount_amount_cents == 0
    assert product_line.unit_cost_cents == 600
    assert stock_of(shampoo, location_a) == 8

    audit = db_session.query(InventoryAudit).one()
    assert audit.adjustment_type == "sale"
    assert audit.previous_stock == 10
    assert audit.new_stock == 8
    assert audit.reference == tx.reference


def test_product_sale_type(db_session, shampoo, location_a, set_stock):
    set_stock(shampoo, location_a, 3)

    tx = _sale(location_a, [{"type": "product", "product_id": shampoo.id, "unit_price_cents": 1000}])

    assert tx.type == "product_sale"
    assert tx.total_cents == 1000


def test_insufficient_stock_rolls_back_whole_sale(
    db_session, haircut, shampoo, location_a, set_stock, stock_of
):
    set_stock(shampoo, location_a, 1)

    with pytest.raises(InsufficientStockError):
        _sale(location_a, [
            {"type": "service", "service_id": haircut.id},
            {"type": "product", "product_id": shampoo.id, "quantity": 2},
        ])

    assert stock_of(shampoo, location_a) == 1
    assert db_session.query(Transaction).count() == 0
    assert db_session.query(InventoryAudit).count() == 0


def test_sale_completes_confirmed_appointment(db_session, salon_client, stylist, haircut, location_a):
    appointment = appointment_service.create_appointment(SYSTEM_CONTEXT, {
        "client_id": salon_client.id,
        "staff_id": stylist.id,
        "service_id": haircut.id,
        "location_id": location_a.id,
        "date": "2025-01-10T10:00:00Z",
        "duration": 60,
    })
    appointment_service.update_appointment_status(SYSTEM_CONTEXT, appointment.id, "confirmed")

    tx = _sale(
        location_a,
        [{"type": "service", "service_id": haircut.id}],
        appointment_id=appointment.id,
    )

    appointment = appointment_service.get_appointment(SYSTEM_CONTEXT, appointment.id)
    assert appointment.status == "completed"
    assert [e.status for e in appointment.status_history] == ["pending", "confirmed", "completed"]
    assert tx.client_id == salon_client.id
    assert tx.staff_name == "Jane Smith"


def test_sale_on_pending_appointment_confirms_then_completes(db_session, salon_client, stylist, haircut, location_a):
    appointment = appointment_service.create_appointment(SYSTEM_CONTEXT, {
        "client_id": salon_client.id,
        "staff_id": stylist.id,
        "service_id": haircut.id,
        "date": "2025-01-10T10:00:00Z",
        "duration": 60,
    })

    sale = _sale(location_a, [{"type": "service", "service_id": haircut.id}], appointment_id=appointment.id)

    assert sale.appointment_id == appointment.id
    appointment = appointment_service.get_appointment(SYSTEM_CONTEXT, appointment.id)
    assert appointment.status == "completed"
    assert [e.status for e in appointment.status_history] == ["pending", "confirmed", "completed"]
    assert [e.sequence for e in appointment.status_history] == [1, 2, 3]


def test_sale_on_cancelled_appointment_is_rejected(db_session, salon_client, stylist, haircut, location_a):
    appointment = appointment_service.create_appointment(SYSTEM_CONTEXT, {
        "client_id": salon_client.id,
        "staff_id": stylist.id,
        "service_id": haircut.id,
        "date": "2025-01-10T10:00:00Z",
        "duration": 60,
    })
    appointment_service.update_appointment_status(SYSTEM_CONTEXT, appointment.id, "cancelled")

    with pytest.raises(AppointmentStatusError):
        _sale(location_a, [{"type": "service", "service_id": haircut.id}], appointment_id=appointment.id)

    assert db_session.query(Transaction).count() == 0


@pytest.mark.parametrize("payload_change", [
    {"payment_method": "cheque"},
    {"items": []},
    {"items": [{"type": "voucher"}]},
    {"discount_percentage": 101},
    {"discount_percentage": 12.5},
    {"location_id": None},
])
def test_invalid_sale_payloads(db_session, haircut, location_a, payload_change):
    payload = {
        "location_id": location_a.id,
        "payment_method": "cash",
        "items": [{"type": "service", "service_id": haircut.id}],
    }
    payload.update(payload_change)

    with pytest.raises(ValidationError):
        sales_service.create_sale(SYSTEM_CONTEXT, payload)


def test_daily_summary(db_session, haircut, shampoo, location_a, set_stock):
    set_stock(shampoo, location_a, 5)
    _sale(location_a, [{"type": "service", "service_id": haircut.id}], payment_method="cash")
    _sale(location_a, [{"type": "product", "product_id": shampoo.id}])

    summary = sales_service.daily_summary(SYSTEM_CONTEXT, utcnow().date(), location_id=location_a.id)

    assert summary["transaction_count"] == 2
    assert summary["total_cents"] == 4500 + 1250
    assert summary["by_payment_method"] == {"cash": 4500, "card": 1250}
    assert summary["by_type"] == {"service_sale": 1, "product_sale": 1}


def test_sales_api(client, db_session, haircut, location_a):
    response = client.post("/api/sales", json={
        "location_id": location_a.id,
        "payment_method": "mobile",
        "items": [{"type": "service", "service_id": haircut.id, "quantity": 2}],
    })

    assert response.status_code == 201
    sale = response.get_json()
    assert sale["total_cents"] == 9000
    assert sale["items"][0]["quantity"] == 2

    fetched = client.get(f"/api/sales/{sale['id']}")
    assert fetched.status_code == 200
    assert fetched.get_json()["reference"] == sale["reference"]

    listing = client.get(f"/api/sales?location_id={location_a.id}").get_json()["sales"]
    assert [s["id"] for s in listing] == [sale["id"]]

    summary = client.get("/api/sales/summary").get_json()
    assert summary["transaction_count"] == 1


def test_sales_api_insufficient_stock(client, db_session, shampoo, location_a, set_stock):
    set_stock(shampoo, location_a, 0)

    response = client.post("/api/sales", json={
        "location_id": location_a.id,
        "payment_method": "cash",
        "items": [{"type": "product", "product_id": shampoo.id}],
    })

    assert response.status_code == 409
    assert response.get_json()["current_stock"] == 0
