from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from salonerp.time_utils import to_utc_z, to_utc_z_precise


APPOINTMENT_TYPE_APPOINTMENT = "appointment"
APPOINTMENT_TYPE_BLOCKED = "blocked"

SOURCE_STAFF = "staff"
SOURCE_CLIENT_PORTAL = "client_portal"


class Appointment(db.Model):
    """
    A booked service slot, or a blocked period of staff unavailability
    (type="blocked") that reuses the same table.

    status is always equal to the status of the last AppointmentStatusEntry.
    Appointments are never hard-deleted; cancellation is a status.
    """
    __tablename__ = "appointments"
    __table_args__ = (
        db.Index("ix_appointments_staff_date", "staff_id", "date"),
        db.Index("ix_appointments_location_date", "location_id", "date"),
        db.Index("ix_appointments_client_date", "client_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    booking_reference = db.Column(db.String(32), nullable=True, unique=True)

    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True, index=True)
    client_name = db.Column(db.String(255), nullable=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff_members.id"), nullable=False, index=True)
    staff_name = db.Column(db.String(255), nullable=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=True, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)

    # Start of the slot (UTC-naive) and its length in minutes
    date = db.Column(db.DateTime(timezone=True), nullable=False)
    duration = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(32), nullable=False, index=True)
    type = db.Column(db.String(16), nullable=False, default=APPOINTMENT_TYPE_APPOINTMENT)
    source = db.Column(db.String(32), nullable=False, default=SOURCE_STAFF)

    notes = db.Column(db.Text, nullable=True)
    price_cents = db.Column(db.Integer, nullable=True)
    additional_services = db.Column(db.JSON, nullable=False, default=list)
    products = db.Column(db.JSON, nullable=False, default=list)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    status_history = db.relationship(
        "AppointmentStatusEntry",
        back_populates="appointment",
        order_by="AppointmentStatusEntry.sequence",
        cascade="all, delete-orphan",
        lazy=True,
    )
    service = db.relationship("Service")
    location = db.relationship("Location")

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Appointment id={self.id} status={self.status!r} date={self.date}>"

    @property
    def ends_at(self):
        return self.date + timedelta(minutes=self.duration)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "booking_reference": self.booking_reference,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "staff_id": self.staff_id,
            "staff_name": self.staff_name,
            "service_id": self.service_id,
            "service_name": self.service.name if self.service else None,
            "location_id": self.location_id,
            "date": to_utc_z(self.date),
            "end": to_utc_z(self.ends_at),
            "duration": self.duration,
            "status": self.status,
            "status_history": [entry.to_dict() for entry in self.status_history],
            "type": self.type,
            "source": self.source,
            "notes": self.notes,
            "price_cents": self.price_cents,
            "additional_services": list(self.additional_services or []),
            "products": list(self.products or []),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class AppointmentStatusEntry(db.Model):
    """
    One element of an appointment's append-only status history.

    sequence starts at 1 and increases by one per transition.
    """
    __tablename__ = "appointment_status_entries"
    __table_args__ = (
        db.UniqueConstraint("appointment_id", "sequence", name="uq_status_entries_appointment_sequence"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    appointment_id = db.Column(db.Integer, db.ForeignKey("appointments.id"), nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(32), nullable=False)
    updated_by = db.Column(db.String(255), nullable=False)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False)

    appointment = db.relationship("Appointment", back_populates="status_history")

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "timestamp": to_utc_z_precise(self.timestamp),
            "updated_by": self.updated_by,
        }
