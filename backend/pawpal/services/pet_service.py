# Overview: Service-layer operations for client pets and their history.

from __future__ import annotations

from ..extensions import db
from ..models import (
    Appointment,
    AppointmentPet,
    Cage,
    CageReservation,
    MedicalRecord,
    Pet,
    Transaction,
    User,
)
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    validate_payload,
)


PET_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "species", "breed", "birth_date", "gender", "weight",
        "color", "microchip_number", "photo_url", "notes",
    },
    required_on_create={"name", "species", "birth_date", "gender"},
    ignore_unknown=True,
)

# Form field names used by the client app
FIELD_ALIASES = {
    "microchip_id": "microchip_number",
    "medical_notes": "notes",
}


def _normalize(payload: dict) -> dict:
    data = dict(payload or {})
    for alias, field in FIELD_ALIASES.items():
        if alias in data and field not in data:
            data[field] = data.pop(alias)
    if "microchip_number" in data:
        chip = str(data["microchip_number"] or "").strip()
        # Blank chip ids are stored as NULL so the unique index ignores them
        data["microchip_number"] = chip or None
    return data


def _microchip_taken(chip: str, *, exclude_id: int | None = None) -> bool:
    query = db.session.query(Pet.id).filter(Pet.microchip_number == chip)
    if exclude_id is not None:
        query = query.filter(Pet.id != exclude_id)
    return query.first() is not None


def list_pets(user_id: int) -> list[dict]:
    pets = db.session.query(Pet).filter(Pet.user_id == user_id).order_by(Pet.created_at.desc(), Pet.id.desc()).all()
    return [p.to_dict() for p in pets]


def get_owned_pet(user: User, pet_id: int) -> Pet:
    pet = db.session.query(Pet).filter_by(id=pet_id, user_id=user.id).first()
    if pet is None:
        raise NotFoundError("Pet not found")
    return pet


def create_pet(user: User, payload: dict) -> Pet:
    data = _normalize(payload)
    if any(data.get(f) in (None, "") for f in PET_POLICY.required_on_create):
        raise ValidationError("Missing required fields")

    patch = validate_payload(model=Pet, payload=data, policy=PET_POLICY, partial=False)
    if patch.get("microchip_number") and _microchip_taken(patch["microchip_number"]):
        raise ConflictError("A pet with this microchip ID already exists")

    pet = Pet(user_id=user.id, **patch)
    db.session.add(pet)
    db.session.commit()
    return pet


def update_pet(user: User, pet_id: int, payload: dict) -> Pet:
    pet = get_owned_pet(user, pet_id)
    data = _normalize(payload)
    for field in PET_POLICY.required_on_create:
        if field in data and data[field] in (None, ""):
            raise ValidationError("Missing required fields")

    patch = validate_payload(model=Pet, payload=data, policy=PET_POLICY, partial=True)
    chip = patch.get("microchip_number")
    if chip and _microchip_taken(chip, exclude_id=pet.id):
        raise ConflictError("A pet with this microchip ID already exists")

    for key, value in patch.items():
        setattr(pet, key, value)
    db.session.commit()
    return pet


def delete_pet(user: User, pet_id: int) -> None:
    pet = get_owned_pet(user, pet_id)
    if db.session.query(Cage.id).filter(Cage.current_pet_id == pet.id).first():
        raise ValidationError("Cannot delete a pet that is currently boarding")
    db.session.query(CageReservation).filter(CageReservation.pet_id == pet.id).update(
        {CageReservation.pet_id: None}, synchronize_session=False
    )
    db.session.query(AppointmentPet).filter(AppointmentPet.pet_id == pet.id).delete(synchronize_session=False)
    db.session.delete(pet)
    db.session.commit()


def _appointment_ids_for_pet(pet_id: int):
    return db.session.query(AppointmentPet.appointment_id).filter(AppointmentPet.pet_id == pet_id)


def pet_appointments(pet: Pet) -> list[dict]:
    appointments = (
        db.session.query(Appointment)
        .filter(Appointment.id.in_(_appointment_ids_for_pet(pet.id)))
        .order_by(Appointment.appointment_date.desc(), Appointment.id.desc())
        .all()
    )
    return [a.to_dict() for a in appointments]


def pet_medical_records(pet: Pet) -> list[dict]:
    records = (
        db.session.query(MedicalRecord)
        .filter(MedicalRecord.pet_id == pet.id)
        .order_by(MedicalRecord.record_date.desc(), MedicalRecord.id.desc())
        .all()
    )
    return [r.to_dict() for r in records]


def pet_transactions(pet: Pet) -> list[dict]:
    transactions = (
        db.session.query(Transaction)
        .filter(Transaction.appointment_id.in_(_appointment_ids_for_pet(pet.id)))
        .order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
        .all()
    )
    return [t.to_dict() for t in transactions]
