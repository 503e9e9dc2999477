from __future__ import annotations

from ..extensions import db
from pawpal.time_utils import to_utc_z, to_iso_date


CAGE_TYPES = ("small", "medium", "large", "extra_large", "suite")
CAGE_AVAILABLE = "available"
CAGE_OCCUPIED = "occupied"
CAGE_MAINTENANCE = "maintenance"
CAGE_STATUSES = (CAGE_AVAILABLE, CAGE_OCCUPIED, CAGE_MAINTENANCE)

RESERVATION_RESERVED = "reserved"
RESERVATION_CHECKED_IN = "checked_in"
RESERVATION_CHECKED_OUT = "checked_out"
RESERVATION_CANCELLED = "cancelled"
# Reservations in these states block the cage for their date range
ACTIVE_RESERVATION_STATUSES = (RESERVATION_RESERVED, RESERVATION_CHECKED_IN)


class Cage(db.Model):
    """
    A physical boarding unit.

    The current_* columns describe the stay that is checked in right now;
    future claims live in cage_reservations.
    """
    __tablename__ = "cages"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    cage_number = db.Column(db.String(32), nullable=False, unique=True)
    cage_type = db.Column(db.String(32), nullable=False)
    capacity = db.Column(db.Integer, nullable=False, default=1)
    daily_rate = db.Column(db.Numeric(10, 2, asdecimal=False), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=CAGE_AVAILABLE)
    description = db.Column(db.Text, nullable=True)

    current_pet_id = db.Column(db.Integer, db.ForeignKey("pets.id", ondelete="SET NULL"), nullable=True)
    current_appointment_id = db.Column(
        db.Integer,
        db.ForeignKey("appointments.id", ondelete="SET NULL", use_alter=True, name="fk_cages_current_appointment"),
        nullable=True,
    )
    check_in_date = db.Column(db.Date, nullable=True)
    check_out_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    current_pet = db.relationship("Pet", foreign_keys=[current_pet_id])
    current_appointment = db.relationship("Appointment", foreign_keys=[current_appointment_id], post_update=True)

    def free(self) -> None:
        self.status = CAGE_AVAILABLE
        self.current_pet_id = None
        self.current_appointment_id = None
        self.check_in_date = None
        self.check_out_date = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cage_number": self.cage_number,
            "cage_type": self.cage_type,
            "capacity": self.capacity,
            "daily_rate": self.daily_rate,
            "status": self.status,
            "description": self.description,
            "current_pet_id": self.current_pet_id,
            "current_appointment_id": self.current_appointment_id,
            "check_in_date": to_iso_date(self.check_in_date),
            "check_out_date": to_iso_date(self.check_out_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CageReservation(db.Model):
    """
    Date-bounded claim on a cage for an appointment.

    No two active reservations on one cage may overlap; this is enforced
    at booking time by the overlap query, not by a constraint.
    """
    __tablename__ = "cage_reservations"
    __table_args__ = (
        db.Index("ix_cage_reservations_cage_status", "cage_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cage_id = db.Column(db.Integer, db.ForeignKey("cages.id"), nullable=False, index=True)
    appointment_id = db.Column(db.Integer, db.ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, index=True)
    pet_id = db.Column(db.Integer, db.ForeignKey("pets.id", ondelete="SET NULL"), nullable=True)
    check_in_date = db.Column(db.Date, nullable=False)
    check_out_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=RESERVATION_RESERVED)
    total_amount = db.Column(db.Numeric(10, 2, asdecimal=False), nullable=True)
    special_instructions = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    cage = db.relationship("Cage", backref=db.backref("reservations", lazy=True))
    appointment = db.relationship("Appointment", backref=db.backref("reservations", lazy=True, cascade="all, delete-orphan"))
    pet = db.relationship("Pet")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cage_id": self.cage_id,
            "appointment_id": self.appointment_id,
            "pet_id": self.pet_id,
            "check_in_date": to_iso_date(self.check_in_date),
            "check_out_date": to_iso_date(self.check_out_date),
            "status": self.status,
            "total_amount": self.total_amount,
            "special_instructions": self.special_instructions,
        }
