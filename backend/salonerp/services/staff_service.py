# Overview: Service-layer operations for staff members, their locations, services and login credentials.

"""
Staff service

Staff members are bookable people. A staff member may be linked to one
login-capable User (credentials) and to any number of locations.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Generated temporary passwords satisfy validate_password_strength
- The plaintext temporary password is returned once, at creation or reset, and never stored
- Removing credentials deletes the User and keeps the StaffMember
"""

from __future__ import annotations

import re
import secrets
import string
from dataclasses import dataclass

import bcrypt

from ..extensions import db
from ..context import RequestContext
from ..models import StaffMember, StaffLocation, StaffServiceLink, User, Location, Service
from ..models.staff import STAFF_STATUSES
from salonerp.validation import ValidationError, NotFoundError, ConflictError
from .concurrency import lock_for_update, run_with_retry


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter, one lowercase letter, one digit
    - At least one special character
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))


def generate_temporary_password(length: int = 12) -> str:
    specials = "!@#$%&*"
    required = [
        secrets.choice(string.ascii_uppercase),
        secrets.choice(string.ascii_lowercase),
        secrets.choice(string.digits),
        secrets.choice(specials),
    ]
    alphabet = string.ascii_letters + string.digits + specials
    rest = [secrets.choice(alphabet) for _ in range(length - len(required))]
    chars = required + rest
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


def build_username(name: str, employee_number: str | None) -> str:
    """'Jane Smith', 'EMP-007' -> 'jane.smith.emp007'"""
    base = ".".join(re.sub(r"[^a-z0-9]", "", part) for part in name.lower().split())
    base = re.sub(r"\.+", ".", base).strip(".") or "staff"
    if employee_number:
        suffix = re.sub(r"[^a-z0-9]", "", employee_number.lower())
        if suffix:
            base = f"{base}.{suffix}"
    return base


@dataclass(frozen=True)
class IssuedCredentials:
    staff: StaffMember
    user: User
    username: str
    temporary_password: str

    def to_dict(self) -> dict:
        return {
            "staff_id": self.staff.id,
            "staff_name": self.staff.name,
            "user": self.user.to_dict(),
            "username": self.username,
            "temporary_password": self.temporary_password,
        }


def _check_status(status: str | None) -> None:
    if status is not None and status not in STAFF_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(sorted(STAFF_STATUSES))}")


def _check_locations(location_ids) -> list[int]:
    if not isinstance(location_ids, list):
        raise ValidationError("location_ids must be a list")
    ids = []
    for raw in location_ids:
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise ValidationError("location_ids must contain integers")
        ids.append(raw)
    ids = sorted(set(ids))
    found = {
        loc_id for (loc_id,) in db.session.query(Location.id).filter(
            Location.id.in_(ids),
            Location.is_active.is_(True),
        ).all()
    } if ids else set()
    missing = [i for i in ids if i not in found]
    if missing:
        raise NotFoundError(f"Location not found: {', '.join(str(i) for i in missing)}")
    return ids


def get_staff(staff_id: int) -> StaffMember:
    staff = db.session.query(StaffMember).filter_by(id=staff_id).first()
    if staff is None:
        raise NotFoundError("Staff member not found")
    return staff


def list_staff(
    ctx: RequestContext,
    *,
    location_id: int | None = None,
    status: str | None = None,
) -> list[StaffMember]:
    q = db.session.query(StaffMember)
    if status is not None:
        _check_status(status)
        q = q.filter(StaffMember.status == status)
    if location_id is not None or ctx.is_restricted:
        q = q.join(StaffLocation, StaffLocation.staff_id == StaffMember.id).filter(StaffLocation.is_active.is_(True))
        if location_id is not None:
            q = q.filter(StaffLocation.location_id == location_id)
        q = ctx.filter_by_location(q, StaffLocation.location_id).distinct()
    return q.order_by(StaffMember.name.asc(), StaffMember.id.asc()).all()


def _apply_locations(staff: StaffMember, location_ids: list[int]) -> None:
    wanted = set(location_ids)
    existing = {link.location_id: link for link in staff.location_links}
    for loc_id, link in existing.items():
        link.is_active = loc_id in wanted
    for loc_id in wanted - set(existing):
        staff.location_links.append(StaffLocation(location_id=loc_id, is_active=True))


def create_staff(patch: dict, *, location_ids=None) -> StaffMember:
    _check_status(patch.get("status"))

    def _op():
        if patch.get("employee_number"):
            taken = db.session.query(StaffMember).filter_by(employee_number=patch["employee_number"]).first()
            if taken is not None:
                raise ConflictError(f"Employee number '{patch['employee_number']}' already exists")

        staff = StaffMember(**patch)
        if location_ids is not None:
            _apply_locations(staff, _check_locations(location_ids))
        db.session.add(staff)
        db.session.commit()
        return staff

    return run_with_retry(_op)


def update_staff(staff_id: int, patch: dict) -> StaffMember:
    _check_status(patch.get("status"))

    def _op():
        staff = lock_for_update(db.session.query(StaffMember).filter_by(id=staff_id)).first()
        if staff is None:
            raise NotFoundError("Staff member not found")

        number = patch.get("employee_number")
        if number and number != staff.employee_number:
            taken = db.session.query(StaffMember).filter(
                StaffMember.employee_number == number,
                StaffMember.id != staff_id,
            ).first()
            if taken is not None:
                raise ConflictError(f"Employee number '{number}' already exists")

        for key, value in patch.items():
            setattr(staff, key, value)
        db.session.commit()
        return staff

    return run_with_retry(_op)


def set_staff_locations(staff_id: int, location_ids) -> StaffMember:
    def _op():
        staff = lock_for_update(db.session.query(StaffMember).filter_by(id=staff_id)).first()
        if staff is None:
            raise NotFoundError("Staff member not found")
        _apply_locations(staff, _check_locations(location_ids))
        db.session.commit()
        return staff

    return run_with_retry(_op)


def staff_works_at(staff: StaffMember, location_id: int) -> bool:
    """A staff member with no location links may be booked anywhere."""
    active = staff.location_ids
    return not active or location_id in active


def list_credentials() -> list[dict]:
    """Every staff member with their login account, or user=None without one."""
    rows = (
        db.session.query(StaffMember, User)
        .outerjoin(User, User.id == StaffMember.user_id)
        .order_by(StaffMember.name.asc(), StaffMember.id.asc())
        .all()
    )
    return [
        {
            "staff_id": staff.id,
            "staff_name": staff.name,
            "employee_number": staff.employee_number,
            "has_credentials": user is not None,
            "user": user.to_dict() if user is not None else None,
            "location_ids": staff.location_ids,
        }
        for staff, user in rows
    ]


def create_credentials(
    staff_id: int,
    *,
    email_domain: str,
    role: str = "staff",
    password: str | None = None,
) -> IssuedCredentials:
    """
    Issue login credentials for a staff member.

    The username is derived from the name and employee number; the login
    email is username@email_domain. A temporary password is generated
    unless one is supplied.
    """
    temporary_password = password or generate_temporary_password()
    password_hash = hash_password(temporary_password)

    def _op():
        staff = lock_for_update(db.session.query(StaffMember).filter_by(id=staff_id)).first()
        if staff is None:
            raise NotFoundError("Staff member not found")
        if staff.user_id is not None:
            raise ConflictError("Staff member already has login credentials")

        username = build_username(staff.name, staff.employee_number)
        email = f"{username}@{email_domain}"
        if db.session.query(User).filter(User.email == email).first() is not None:
            raise ConflictError(f"A user with email {email} already exists")

        user = User(email=email, password_hash=password_hash, role=role, is_active=True)
        db.session.add(user)
        db.session.flush()
        staff.user_id = user.id
        db.session.commit()
        return IssuedCredentials(staff=staff, user=user, username=username, temporary_password=temporary_password)

    return run_with_retry(_op)


def _staff_with_credentials(staff_id: int) -> StaffMember:
    staff = lock_for_update(db.session.query(StaffMember).filter_by(id=staff_id)).first()
    if staff is None:
        raise NotFoundError("Staff member not found")
    if staff.user_id is None:
        raise ValidationError("Staff member has no login credentials")
    return staff


def reset_password(staff_id: int) -> IssuedCredentials:
    """Replace the password with a new temporary one, returned once."""
    temporary_password = generate_temporary_password()
    password_hash = hash_password(temporary_password)

    def _op():
        staff = _staff_with_credentials(staff_id)
        staff.user.password_hash = password_hash
        db.session.commit()
        username = staff.user.email.split("@", 1)[0]
        return IssuedCredentials(
            staff=staff,
            user=staff.user,
            username=username,
            temporary_password=temporary_password,
        )

    return run_with_retry(_op)


def update_password(staff_id: int, new_password) -> User:
    if not isinstance(new_password, str) or not new_password:
        raise ValidationError("new_password is required")
    password_hash = hash_password(new_password)

    def _op():
        staff = _staff_with_credentials(staff_id)
        staff.user.password_hash = password_hash
        db.session.commit()
        return staff.user

    return run_with_retry(_op)


def set_credential_locations(staff_id: int, location_ids) -> StaffMember:
    def _op():
        staff = _staff_with_credentials(staff_id)
        _apply_locations(staff, _check_locations(location_ids))
        db.session.commit()
        return staff

    return run_with_retry(_op)


def toggle_credentials_active(staff_id: int) -> User:
    def _op():
        staff = _staff_with_credentials(staff_id)
        staff.user.is_active = not staff.user.is_active
        db.session.commit()
        return staff.user

    return run_with_retry(_op)


def remove_credentials(staff_id: int) -> StaffMember:
    """Delete the login account. The staff record and its bookings stay."""
    def _op():
        staff = _staff_with_credentials(staff_id)
        user = staff.user
        staff.user = None
        db.session.flush()
        db.session.delete(user)
        db.session.commit()
        return staff

    return run_with_retry(_op)


def _check_service_ids(service_ids) -> list[int]:
    if not isinstance(service_ids, list):
        raise ValidationError("service_ids must be a list")
    ids = []
    for raw in service_ids:
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise ValidationError("service_ids must contain integers")
        ids.append(raw)
    ids = sorted(set(ids))
    found = {
        service_id for (service_id,) in db.session.query(Service.id).filter(Service.id.in_(ids)).all()
    } if ids else set()
    missing = [i for i in ids if i not in found]
    if missing:
        raise NotFoundError(f"Service not found: {', '.join(str(i) for i in missing)}")
    return ids


def list_staff_services(staff_id: int) -> list[Service]:
    get_staff(staff_id)
    return (
        db.session.query(Service)
        .join(StaffServiceLink, StaffServiceLink.service_id == Service.id)
        .filter(StaffServiceLink.staff_id == staff_id, StaffServiceLink.is_active.is_(True))
        .order_by(Service.name.asc(), Service.id.asc())
        .all()
    )


def _apply_services(staff: StaffMember, wanted: set[int], *, keep_others: bool) -> None:
    existing = {link.service_id: link for link in staff.service_links}
    for service_id, link in existing.items():
        if service_id in wanted:
            link.is_active = True
        elif not keep_others:
            link.is_active = False
    for service_id in wanted - set(existing):
        staff.service_links.append(StaffServiceLink(service_id=service_id, is_active=True))


def set_staff_services(staff_id: int, service_ids) -> list[Service]:
    """Replace the services a staff member performs."""
    def _op():
        staff = lock_for_update(db.session.query(StaffMember).filter_by(id=staff_id)).first()
        if staff is None:
            raise NotFoundError("Staff member not found")
        _apply_services(staff, set(_check_service_ids(service_ids)), keep_others=False)
        db.session.commit()
        return list_staff_services(staff_id)

    return run_with_retry(_op)


def add_staff_service(staff_id: int, service_id: int) -> list[Service]:
    def _op():
        staff = lock_for_update(db.session.query(StaffMember).filter_by(id=staff_id)).first()
        if staff is None:
            raise NotFoundError("Staff member not found")
        _apply_services(staff, set(_check_service_ids([service_id])), keep_others=True)
        db.session.commit()
        return list_staff_services(staff_id)

    return run_with_retry(_op)


def remove_staff_service(staff_id: int, service_id: int) -> list[Service]:
    def _op():
        get_staff(staff_id)
        link = db.session.query(StaffServiceLink).filter_by(staff_id=staff_id, service_id=service_id).first()
        if link is None:
            raise NotFoundError("Staff service assignment not found")
        link.is_active = False
        db.session.commit()
        return list_staff_services(staff_id)

    return run_with_retry(_op)
