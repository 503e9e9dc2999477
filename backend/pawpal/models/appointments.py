from __future__ import annotations

from ..extensions import db
from pawpal.time_utils import to_utc_z, to_iso_date


STATUS_PENDING = "pending"
STATUS_PENDING_PAYMENT = "pending payment"
STATUS_PAID = "paid"
STATUS_CONFIRMED = "confirmed"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
STATUS_REJECTED = "rejected"
APPOINTMENT_STATUSES = (
    STATUS_PENDING,
    STATUS_PENDING_PAYMENT,
    STATUS_PAID,
    STATUS_CONFIRMED,
    STATUS_IN_PROGRESS,
    STATUS_COMPLETED,
    STATUS_CANCELLED,
    STATUS_REJECTED,
)

PAYMENT_CASH = "cash"


class Appointment(db.Model):
    """
    A booked service for one or more pets.

    Boarding appointments additionally carry a cage, a stay window and two
    client documents (ID and signature), each verified independently.
    """
    __tablename__ = "appointments"
    __table_args__ = (
        db.Index("ix_appointments_user_status", "user_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=False)
    cage_id = db.Column(db.Integer, db.ForeignKey("cages.id", ondelete="SET NULL"), nullable=True)

    appointment_date = db.Column(db.Date, nullable=False, index=True)
    appointment_time = db.Column(db.Time, nullable=True)
    status = db.Column(db.String(32), nullable=False, default=STATUS_PENDING)
    payment_method = db.Column(db.String(32), nullable=False)
    total_amount = db.Column(db.Numeric(10, 2, asdecimal=False), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # Payment receipt
    receipt_url = db.Column(db.String(500), nullable=True)
    receipt_verified = db.Column(db.Boolean, nullable=False, default=False)
    receipt_verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    receipt_verified_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Boarding stay
    check_in_date = db.Column(db.Date, nullable=True)
    check_out_date = db.Column(db.Date, nullable=True)
    boarding_days = db.Column(db.Integer, nullable=True)

    # Boarding documents
    boarding_id_url = db.Column(db.String(500), nullable=True)
    boarding_id_verified = db.Column(db.Boolean, nullable=False, default=False)
    boarding_id_verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    boarding_id_verified_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    boarding_id_rejection_reason = db.Column(db.Text, nullable=True)
    boarding_signature_url = db.Column(db.String(500), nullable=True)
    boarding_signature_verified = db.Column(db.Boolean, nullable=False, default=False)
    boarding_signature_verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    boarding_signature_verified_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    boarding_signature_rejection_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("appointments", lazy=True))
    service = db.relationship("Service")
    cage = db.relationship("Cage", foreign_keys=[cage_id])
    pets = db.relationship("Pet", secondary="appointment_pets", lazy="selectin", order_by="Pet.id")

    @property
    def is_boarding(self) -> bool:
        return bool(self.service and self.service.is_boarding)

    @property
    def is_cash(self) -> bool:
        return (self.payment_method or "").lower() == PAYMENT_CASH

    def to_dict(self, *, include_client: bool = False) -> dict:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "service_id": self.service_id,
            "service_name": self.service.name if self.service else None,
            "service_price": self.service.price if self.service else None,
            "category_name": self.service.category.name if self.service and self.service.category else None,
            "cage_id": self.cage_id,
            "cage_number": self.cage.cage_number if self.cage else None,
            "cage_type": self.cage.cage_type if self.cage else None,
            "cage_rate": self.cage.daily_rate if self.cage else None,
            "appointment_date": to_iso_date(self.appointment_date),
            "appointment_time": self.appointment_time.strftime("%H:%M") if self.appointment_time else None,
            "status": self.status,
            "payment_method": self.payment_method,
            "total_amount": self.total_amount,
            "notes": self.notes,
            "receipt_url": self.receipt_url,
            "receipt_verified": self.receipt_verified,
            "receipt_verified_at": to_utc_z(self.receipt_verified_at),
            "receipt_verified_by": self.receipt_verified_by,
            "check_in_date": to_iso_date(self.check_in_date),
            "check_out_date": to_iso_date(self.check_out_date),
            "boarding_days": self.boarding_days,
            "boarding_id_url": self.boarding_id_url,
            "boarding_id_verified": self.boarding_id_verified,
            "boarding_id_verified_at": to_utc_z(self.boarding_id_verified_at),
            "boarding_id_rejection_reason": self.boarding_id_rejection_reason,
            "boarding_signature_url": self.boarding_signature_url,
            "boarding_signature_verified": self.boarding_signature_verified,
            "boarding_signature_verified_at": to_utc_z(self.boarding_signature_verified_at),
            "boarding_signature_rejection_reason": self.boarding_signature_rejection_reason,
            "pets": [{"id": p.id, "name": p.name, "species": p.species, "breed": p.breed} for p in self.pets],
            "pet_names": ", ".join(p.name for p in self.pets),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_client and self.user:
            data["client_full_name"] = self.user.full_name
            data["client_email"] = self.user.email
            data["client_phone"] = self.user.phone
        return data


class AppointmentPet(db.Model):
    __tablename__ = "appointment_pets"
    __table_args__ = (
        db.UniqueConstraint("appointment_id", "pet_id", name="uq_appointment_pets"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    appointment_id = db.Column(db.Integer, db.ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, index=True)
    pet_id = db.Column(db.Integer, db.ForeignKey("pets.id", ondelete="CASCADE"), nullable=False, index=True)
