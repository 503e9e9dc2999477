from __future__ import annotations

from ..extensions import db
from pawpal.time_utils import to_utc_z, to_iso_date


class Pet(db.Model):
    """A client's animal. Microchip numbers are unique when present."""
    __tablename__ = "pets"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    species = db.Column(db.String(50), nullable=False)
    breed = db.Column(db.String(100), nullable=True)
    birth_date = db.Column(db.Date, nullable=False)
    gender = db.Column(db.String(16), nullable=False)
    weight = db.Column(db.Numeric(6, 2, asdecimal=False), nullable=True)
    color = db.Column(db.String(50), nullable=True)
    microchip_number = db.Column(db.String(64), nullable=True, unique=True)
    photo_url = db.Column(db.String(500), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    owner = db.relationship("User", backref=db.backref("pets", lazy=True, cascade="all, delete-orphan"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "species": self.species,
            "breed": self.breed,
            "birth_date": to_iso_date(self.birth_date),
            "gender": self.gender,
            "weight": self.weight,
            "color": self.color,
            "microchip_number": self.microchip_number,
            "photo_url": self.photo_url,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class MedicalRecord(db.Model):
    __tablename__ = "medical_records"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    pet_id = db.Column(db.Integer, db.ForeignKey("pets.id", ondelete="CASCADE"), nullable=False, index=True)
    appointment_id = db.Column(db.Integer, db.ForeignKey("appointments.id", ondelete="SET NULL"), nullable=True, index=True)
    veterinarian_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    diagnosis = db.Column(db.Text, nullable=False)
    treatment = db.Column(db.Text, nullable=True)
    prescription = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    record_date = db.Column(db.Date, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    pet = db.relationship("Pet", backref=db.backref("medical_records", lazy=True, cascade="all, delete-orphan"))
    veterinarian = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pet_id": self.pet_id,
            "appointment_id": self.appointment_id,
            "veterinarian_id": self.veterinarian_id,
            "veterinarian_name": self.veterinarian.full_name if self.veterinarian else None,
            "diagnosis": self.diagnosis,
            "treatment": self.treatment,
            "prescription": self.prescription,
            "notes": self.notes,
            "record_date": to_iso_date(self.record_date),
            "created_at": to_utc_z(self.created_at),
        }
