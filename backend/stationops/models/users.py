from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


ROLE_STAFF = "STAFF"
ROLE_ADMIN = "ADMIN"


class User(db.Model):
    """
    Station staff and administrators.

    WHY: Every shift close, lock, void and anomaly review is attributable.
    The ADMIN role is the override tier allowed to edit locked shifts.
    Credentials and sessions live outside this backend.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    role = db.Column(db.String(16), nullable=False, default=ROLE_STAFF)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    station = db.relationship("Station", backref=db.backref("staff", lazy=True))

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "station_id": self.station_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
