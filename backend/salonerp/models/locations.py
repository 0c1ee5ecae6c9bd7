from __future__ import annotations

from ..extensions import db
from salonerp.time_utils import to_utc_z


LOCATION_KIND_BRANCH = "branch"
LOCATION_KIND_HOME_SERVICE = "home_service"
LOCATION_KIND_ONLINE = "online"
LOCATION_KINDS = {LOCATION_KIND_BRANCH, LOCATION_KIND_HOME_SERVICE, LOCATION_KIND_ONLINE}


class Location(db.Model):
    """
    A salon branch, the home-service channel, or the online-store channel.

    Locations partition stock (ProductLocation), staff assignments
    (StaffLocation) and appointments. They are never hard-deleted through
    the API; deactivation sets is_active=False.
    """
    __tablename__ = "locations"
    __table_args__ = (
        db.Index("ix_locations_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    kind = db.Column(db.String(32), nullable=False, default=LOCATION_KIND_BRANCH)

    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(120), nullable=True)
    state = db.Column(db.String(120), nullable=True)
    zip_code = db.Column(db.String(32), nullable=True)
    country = db.Column(db.String(120), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Location id={self.id} name={self.name!r} kind={self.kind}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "country": self.country,
            "phone": self.phone,
            "email": self.email,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
