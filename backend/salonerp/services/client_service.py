from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..context import RequestContext
from ..models import Client, Appointment, Transaction
from salonerp.validation import NotFoundError
from .concurrency import lock_for_update, run_with_retry


def get_client(client_id: int) -> Client:
    client = db.session.query(Client).filter_by(id=client_id).first()
    if client is None:
        raise NotFoundError("Client not found")
    return client


def list_clients(*, search: str | None = None, limit: int = 100) -> list[Client]:
    q = db.session.query(Client)
    if search:
        term = f"%{search.strip().lower()}%"
        q = q.filter(or_(
            db.func.lower(Client.name).like(term),
            db.func.lower(Client.email).like(term),
            Client.phone.like(term),
        ))
    return q.order_by(Client.name.asc(), Client.id.asc()).limit(limit).all()


def create_client(patch: dict) -> Client:
    def _op():
        client = Client(**patch)
        db.session.add(client)
        db.session.commit()
        return client

    return run_with_retry(_op)


def update_client(client_id: int, patch: dict) -> Client:
    def _op():
        client = lock_for_update(db.session.query(Client).filter_by(id=client_id)).first()
        if client is None:
            raise NotFoundError("Client not found")
        for key, value in patch.items():
            setattr(client, key, value)
        db.session.commit()
        return client

    return run_with_retry(_op)


def client_history(ctx: RequestContext, client_id: int) -> dict:
    """Appointments and sales for one client, newest first."""
    client = get_client(client_id)

    appointments_q = db.session.query(Appointment).filter(Appointment.client_id == client_id)
    if ctx.is_restricted:
        appointments_q = appointments_q.filter(or_(
            Appointment.location_id.is_(None),
            Appointment.location_id.in_(sorted(ctx.location_ids)),
        ))
    appointments = appointments_q.order_by(Appointment.date.desc(), Appointment.id.desc()).all()

    sales_q = db.session.query(Transaction).filter(Transaction.client_id == client_id)
    sales_q = ctx.filter_by_location(sales_q, Transaction.location_id)
    sales = sales_q.order_by(Transaction.created_at.desc(), Transaction.id.desc()).all()

    return {
        "client": client.to_dict(),
        "appointments": [a.to_dict() for a in appointments],
        "sales": [s.to_dict() for s in sales],
        "total_spent_cents": sum(s.total_cents for s in sales if s.status == "completed"),
    }
