from __future__ import annotations

from ..extensions import db
from salonerp.time_utils import to_utc_z


STAFF_STATUS_ACTIVE = "ACTIVE"
STAFF_STATUS_INACTIVE = "INACTIVE"
STAFF_STATUS_ON_LEAVE = "ON_LEAVE"
STAFF_STATUSES = {STAFF_STATUS_ACTIVE, STAFF_STATUS_INACTIVE, STAFF_STATUS_ON_LEAVE}


class User(db.Model):
    """
    Login-capable account. A StaffMember links to at most one User.

    password_hash is a bcrypt hash; plaintext passwords are never stored.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(32), nullable=False, default="staff")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r}>"

    def to_dict(self) -> dict:
        # password_hash is never serialized
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StaffMember(db.Model):
    __tablename__ = "staff_members"
    __table_args__ = (
        db.UniqueConstraint("employee_number", name="uq_staff_employee_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    employee_number = db.Column(db.String(32), nullable=True)
    job_role = db.Column(db.String(64), nullable=False, default="stylist")
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=STAFF_STATUS_ACTIVE, index=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, unique=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    user = db.relationship("User", backref=db.backref("staff_member", uselist=False))
    location_links = db.relationship(
        "StaffLocation",
        back_populates="staff",
        cascade="all, delete-orphan",
        lazy=True,
    )
    service_links = db.relationship(
        "StaffServiceLink",
        back_populates="staff",
        cascade="all, delete-orphan",
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<StaffMember id={self.id} name={self.name!r}>"

    @property
    def location_ids(self) -> list[int]:
        return sorted(link.location_id for link in self.location_links if link.is_active)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "employee_number": self.employee_number,
            "job_role": self.job_role,
            "email": self.email,
            "phone": self.phone,
            "status": self.status,
            "user_id": self.user_id,
            "has_credentials": self.user_id is not None,
            "location_ids": self.location_ids,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StaffLocation(db.Model):
    """Grants a staff member access to (and bookability at) a location."""
    __tablename__ = "staff_locations"
    __table_args__ = (
        db.UniqueConstraint("staff_id", "location_id", name="uq_staff_locations_staff_location"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff_members.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    staff = db.relationship("StaffMember", back_populates="location_links")
    location = db.relationship("Location")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "staff_id": self.staff_id,
            "location_id": self.location_id,
            "location_name": self.location.name if self.location else None,
            "is_active": self.is_active,
        }


class StaffServiceLink(db.Model):
    """A service the staff member performs. Removal deactivates the link."""
    __tablename__ = "staff_services"
    __table_args__ = (
        db.UniqueConstraint("staff_id", "service_id", name="uq_staff_services_staff_service"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff_members.id"), nullable=False, index=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    staff = db.relationship("StaffMember", back_populates="service_links")
    service = db.relationship("Service")
