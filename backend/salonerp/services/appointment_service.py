# Overview: Service-layer operations for appointments; encapsulates business logic and database work.

"""
Appointment Lifecycle Service

================================================================================
PURPOSE: Track each appointment's current status and its append-only history
================================================================================

STATE MACHINE (closed set, enforced by ALLOWED_TRANSITIONS):

    pending ---------> confirmed, checked-in, arrived, cancelled, no-show
    confirmed -------> checked-in, arrived, service-started, completed,
                       cancelled, no-show
    checked-in ------> arrived, service-started, completed, cancelled
    arrived ---------> service-started, completed, cancelled
    service-started -> completed
    blocked ---------> cancelled
    completed, cancelled, no-show: terminal

RULES:
1. A new appointment starts "pending" with exactly one history entry.
   Blocked time starts "blocked".
2. Every accepted status change appends exactly one history entry and
   overwrites `status`; the last entry always equals `status`.
3. History timestamps never decrease within one appointment.
4. Same-state transitions are rejected, so history never records a no-op.
5. Staff bookings are not checked for overlaps. Client-portal bookings are.

================================================================================
"""

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import or_, and_

from ..extensions import db
from ..context import RequestContext
from ..models import Appointment, AppointmentStatusEntry, Client, StaffMember, Service
from ..models.appointments import (
    APPOINTMENT_TYPE_APPOINTMENT,
    APPOINTMENT_TYPE_BLOCKED,
    SOURCE_STAFF,
    SOURCE_CLIENT_PORTAL,
)
from salonerp.time_utils import utcnow, day_bounds, to_utc_z
from salonerp.validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_appointment,
    ValidationError,
    NotFoundError,
    ConflictError,
    MAX_DURATION_MINUTES,
)
from .concurrency import lock_for_update, run_with_retry
from .location_service import get_active_location
from .staff_service import staff_works_at


STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_CHECKED_IN = "checked-in"
STATUS_ARRIVED = "arrived"
STATUS_SERVICE_STARTED = "service-started"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
STATUS_NO_SHOW = "no-show"
STATUS_BLOCKED = "blocked"

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_PENDING: frozenset({
        STATUS_CONFIRMED, STATUS_CHECKED_IN, STATUS_ARRIVED, STATUS_CANCELLED, STATUS_NO_SHOW,
    }),
    STATUS_CONFIRMED: frozenset({
        STATUS_CHECKED_IN, STATUS_ARRIVED, STATUS_SERVICE_STARTED,
        STATUS_COMPLETED, STATUS_CANCELLED, STATUS_NO_SHOW,
    }),
    STATUS_CHECKED_IN: frozenset({
        STATUS_ARRIVED, STATUS_SERVICE_STARTED, STATUS_COMPLETED, STATUS_CANCELLED,
    }),
    STATUS_ARRIVED: frozenset({STATUS_SERVICE_STARTED, STATUS_COMPLETED, STATUS_CANCELLED}),
    STATUS_SERVICE_STARTED: frozenset({STATUS_COMPLETED}),
    STATUS_BLOCKED: frozenset({STATUS_CANCELLED}),
    STATUS_COMPLETED: frozenset(),
    STATUS_CANCELLED: frozenset(),
    STATUS_NO_SHOW: frozenset(),
}

VALID_STATUSES = frozenset(ALLOWED_TRANSITIONS)

# Appointments in these states do not occupy their slot
INACTIVE_STATUSES = frozenset({STATUS_COMPLETED, STATUS_CANCELLED, STATUS_NO_SHOW})

CLIENT_PORTAL_ACTOR = "Client Portal"

APPOINTMENT_POLICY = ModelValidationPolicy(
    writable_fields={
        "client_id", "staff_id", "service_id", "location_id", "date", "duration",
        "notes", "price_cents", "additional_services", "products",
    },
    required_on_create={"client_id", "staff_id", "service_id", "date", "duration"},
)

BLOCKED_TIME_POLICY = ModelValidationPolicy(
    writable_fields={"staff_id", "location_id", "date", "duration", "notes"},
    required_on_create={"staff_id", "date", "duration"},
)

# status only changes through update_appointment_status
APPOINTMENT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "staff_id", "location_id", "date", "duration",
        "notes", "price_cents", "additional_services", "products",
    },
)


class AppointmentStatusError(ConflictError):
    """Raised when a status change is not allowed from the current status."""

    def __init__(self, message: str, *, current_status: str | None = None):
        super().__init__(message)
        self.current_status = current_status

    @property
    def allowed_transitions(self) -> list[str]:
        if self.current_status is None:
            return []
        return sorted(ALLOWED_TRANSITIONS.get(self.current_status, ()))

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "current_status": self.current_status,
            "allowed_transitions": self.allowed_transitions,
        }


class BookingConflictError(ConflictError):
    """Raised when a requested slot overlaps an existing booking."""

    def __init__(self, message: str, conflicts: list[Appointment]):
        super().__init__(message)
        self.conflicts = conflicts

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "conflicts": [
                {
                    "id": a.id,
                    "booking_reference": a.booking_reference,
                    "date": to_utc_z(a.date),
                    "end": to_utc_z(a.ends_at),
                    "status": a.status,
                    "type": a.type,
                }
                for a in self.conflicts
            ],
        }


def validate_status(status) -> str:
    if not isinstance(status, str) or status not in VALID_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )
    return status


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


def _append_status(appointment: Appointment, status: str, actor: str) -> AppointmentStatusEntry:
    history = appointment.status_history
    last = history[-1] if history else None

    timestamp = utcnow()
    if last is not None and last.timestamp is not None and last.timestamp > timestamp:
        timestamp = last.timestamp

    entry = AppointmentStatusEntry(
        sequence=(last.sequence + 1) if last is not None else 1,
        status=status,
        updated_by=actor,
        timestamp=timestamp,
    )
    history.append(entry)
    appointment.status = status
    return entry


def _require_client(client_id: int) -> Client:
    client = db.session.query(Client).filter_by(id=client_id).first()
    if client is None:
        raise NotFoundError("Client not found")
    return client


def _require_staff(staff_id: int) -> StaffMember:
    staff = db.session.query(StaffMember).filter_by(id=staff_id).first()
    if staff is None:
        raise NotFoundError("Staff member not found")
    return staff


def _require_service(service_id: int) -> Service:
    service = db.session.query(Service).filter_by(id=service_id).first()
    if service is None:
        raise NotFoundError("Service not found")
    return service


def _check_location(ctx: RequestContext, staff: StaffMember, location_id: int | None) -> None:
    if location_id is None:
        return
    get_active_location(location_id)
    ctx.require_access(location_id)
    if not staff_works_at(staff, location_id):
        raise ValidationError(f"{staff.name} is not assigned to location {location_id}")


def _assign_reference(appointment: Appointment) -> None:
    db.session.flush()
    appointment.booking_reference = f"BK-{appointment.id:06d}"


def find_conflicts(
    *,
    staff_id: int,
    location_id: int | None,
    start: datetime,
    duration: int,
    exclude_id: int | None = None,
) -> list[Appointment]:
    """
    Active bookings of this staff member overlapping [start, start + duration).

    Blocked time without a location blocks the staff member everywhere.
    """
    end = start + timedelta(minutes=duration)
    q = db.session.query(Appointment).filter(
        Appointment.staff_id == staff_id,
        Appointment.status.notin_(sorted(INACTIVE_STATUSES)),
        Appointment.date < end,
        Appointment.date >= start - timedelta(minutes=MAX_DURATION_MINUTES),
    )
    if location_id is not None:
        q = q.filter(or_(
            Appointment.location_id == location_id,
            and_(Appointment.type == APPOINTMENT_TYPE_BLOCKED, Appointment.location_id.is_(None)),
        ))
    if exclude_id is not None:
        q = q.filter(Appointment.id != exclude_id)

    candidates = q.order_by(Appointment.date.asc(), Appointment.id.asc()).all()
    return [a for a in candidates if a.ends_at > start]


def _build_appointment(ctx: RequestContext, patch: dict, *, source: str) -> Appointment:
    client = _require_client(patch["client_id"])
    staff = _require_staff(patch["staff_id"])
    service = _require_service(patch["service_id"])
    _check_location(ctx, staff, patch.get("location_id"))

    price_cents = patch.get("price_cents")
    if price_cents is None:
        price_cents = service.price_cents

    return Appointment(
        client_id=client.id,
        client_name=client.name,
        staff_id=staff.id,
        staff_name=staff.name,
        service_id=service.id,
        location_id=patch.get("location_id"),
        date=patch["date"],
        duration=patch["duration"],
        notes=patch.get("notes"),
        price_cents=price_cents,
        additional_services=patch.get("additional_services") or [],
        products=patch.get("products") or [],
        type=APPOINTMENT_TYPE_APPOINTMENT,
        source=source,
    )


def create_appointment(ctx: RequestContext, payload: dict, *, source: str = SOURCE_STAFF) -> Appointment:
    """
    Book an appointment from the staff calendar.

    Starts in "pending" with one history entry written by the context actor.
    No overlap check is performed; staff may double-book deliberately.
    """
    patch = validate_payload(model=Appointment, payload=payload, policy=APPOINTMENT_POLICY, partial=False)
    enforce_rules_appointment(patch)

    def _op():
        appointment = _build_appointment(ctx, patch, source=source)
        _append_status(appointment, STATUS_PENDING, ctx.actor_name)
        db.session.add(appointment)
        _assign_reference(appointment)
        db.session.commit()
        return appointment

    return run_with_retry(_op)


def book_client_portal_appointment(ctx: RequestContext, payload: dict) -> Appointment:
    """
    Book through the client portal.

    Differences from staff booking:
    - location_id is required and the date must be in the future
    - overlapping active bookings for the same staff member and location
      are refused with BookingConflictError
    - the history entry is written by "Client Portal"
    """
    patch = validate_payload(model=Appointment, payload=payload, policy=APPOINTMENT_POLICY, partial=False)
    enforce_rules_appointment(patch)
    if patch.get("location_id") is None:
        raise ValidationError("Missing required fields: location_id")
    if patch["date"] <= utcnow():
        raise ValidationError("Appointment date must be in the future")

    portal_ctx = ctx.as_actor(CLIENT_PORTAL_ACTOR)

    def _op():
        appointment = _build_appointment(portal_ctx, patch, source=SOURCE_CLIENT_PORTAL)

        conflicts = find_conflicts(
            staff_id=appointment.staff_id,
            location_id=appointment.location_id,
            start=appointment.date,
            duration=appointment.duration,
        )
        if conflicts:
            raise BookingConflictError("The selected time slot is not available", conflicts)

        _append_status(appointment, STATUS_PENDING, portal_ctx.actor_name)
        db.session.add(appointment)
        _assign_reference(appointment)
        db.session.commit()
        return appointment

    return run_with_retry(_op)


def create_blocked_time(ctx: RequestContext, payload: dict) -> Appointment:
    """Record staff unavailability as a "blocked" appointment."""
    patch = validate_payload(model=Appointment, payload=payload, policy=BLOCKED_TIME_POLICY, partial=False)
    enforce_rules_appointment(patch)

    def _op():
        staff = _require_staff(patch["staff_id"])
        _check_location(ctx, staff, patch.get("location_id"))

        appointment = Appointment(
            staff_id=staff.id,
            staff_name=staff.name,
            location_id=patch.get("location_id"),
            date=patch["date"],
            duration=patch["duration"],
            notes=patch.get("notes"),
            type=APPOINTMENT_TYPE_BLOCKED,
            source=SOURCE_STAFF,
            additional_services=[],
            products=[],
        )
        _append_status(appointment, STATUS_BLOCKED, ctx.actor_name)
        db.session.add(appointment)
        _assign_reference(appointment)
        db.session.commit()
        return appointment

    return run_with_retry(_op)


def transition_appointment(appointment: Appointment, new_status: str, actor: str) -> AppointmentStatusEntry:
    """
    Apply one lifecycle transition to a loaded appointment. Does not commit.

    Raises AppointmentStatusError for same-state and disallowed transitions.
    """
    current = appointment.status
    if new_status == current:
        raise AppointmentStatusError(
            f"Appointment is already '{current}'",
            current_status=current,
        )
    if not can_transition(current, new_status):
        raise AppointmentStatusError(
            f"Cannot change status from '{current}' to '{new_status}'",
            current_status=current,
        )
    return _append_status(appointment, new_status, actor)


def update_appointment_status(ctx: RequestContext, appointment_id: int, new_status) -> Appointment:
    new_status = validate_status(new_status)

    def _op():
        appointment = lock_for_update(db.session.query(Appointment).filter_by(id=appointment_id)).first()
        if appointment is None:
            raise NotFoundError("Appointment not found")
        ctx.require_access(appointment.location_id)

        transition_appointment(appointment, new_status, ctx.actor_name)
        db.session.commit()
        return appointment

    return run_with_retry(_op)


def update_appointment(ctx: RequestContext, appointment_id: int, payload: dict) -> Appointment:
    """
    Edit booking details. Status is not editable here.

    Terminal appointments (completed, cancelled, no-show) are read-only.
    """
    if isinstance(payload, dict) and "status" in payload:
        raise ValidationError("Use the status endpoint to change status")
    patch = validate_payload(model=Appointment, payload=payload, policy=APPOINTMENT_UPDATE_POLICY, partial=True)
    enforce_rules_appointment(patch)
    for field in ("staff_id", "date"):
        if field in patch and patch[field] is None:
            raise ValidationError(f"{field} cannot be null")

    def _op():
        appointment = lock_for_update(db.session.query(Appointment).filter_by(id=appointment_id)).first()
        if appointment is None:
            raise NotFoundError("Appointment not found")
        ctx.require_access(appointment.location_id)
        if appointment.status in INACTIVE_STATUSES:
            raise AppointmentStatusError(
                f"Cannot edit an appointment that is '{appointment.status}'",
                current_status=appointment.status,
            )

        staff = None
        if "staff_id" in patch:
            staff = _require_staff(patch["staff_id"])
            appointment.staff_name = staff.name
        if "location_id" in patch or staff is not None:
            staff = staff or _require_staff(appointment.staff_id)
            _check_location(ctx, staff, patch.get("location_id", appointment.location_id))

        for key, value in patch.items():
            setattr(appointment, key, value)

        db.session.commit()
        return appointment

    return run_with_retry(_op)


def get_appointment(ctx: RequestContext, appointment_id: int) -> Appointment:
    appointment = db.session.query(Appointment).filter_by(id=appointment_id).first()
    if appointment is None:
        raise NotFoundError("Appointment not found")
    ctx.require_access(appointment.location_id)
    return appointment


def list_appointments(
    ctx: RequestContext,
    *,
    client_id: int | None = None,
    staff_id: int | None = None,
    location_id: int | None = None,
    status: str | None = None,
    day=None,
    start: datetime | None = None,
    end: datetime | None = None,
    type: str | None = None,
) -> list[Appointment]:
    """
    Filtered appointment listing ordered by date.

    Appointments without a location are visible to every context.
    """
    q = db.session.query(Appointment)
    if client_id is not None:
        q = q.filter(Appointment.client_id == client_id)
    if staff_id is not None:
        q = q.filter(Appointment.staff_id == staff_id)
    if location_id is not None:
        q = q.filter(Appointment.location_id == location_id)
    if status is not None:
        q = q.filter(Appointment.status == validate_status(status))
    if type is not None:
        q = q.filter(Appointment.type == type)
    if day is not None:
        day_start, day_end = day_bounds(day)
        q = q.filter(Appointment.date >= day_start, Appointment.date < day_end)
    if start is not None:
        q = q.filter(Appointment.date >= start)
    if end is not None:
        q = q.filter(Appointment.date < end)
    if ctx.is_restricted:
        q = q.filter(or_(
            Appointment.location_id.is_(None),
            Appointment.location_id.in_(sorted(ctx.location_ids)),
        ))
    return q.order_by(Appointment.date.asc(), Appointment.id.asc()).all()
