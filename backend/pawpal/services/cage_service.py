# Overview: Service-layer operations for cages and boarding availability; encapsulates business logic and database work.

"""
Cage Service

Availability rule: a cage is unavailable for [check_in, check_out] when it
has a reservation in an active state (reserved, checked_in) whose range
intersects the request. The comparison is inclusive on both ends, so a
stay that checks out on the day another checks in counts as overlapping.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import select

from ..extensions import db
from ..models import Cage, CageReservation, Pet
from ..models.boarding import (
    ACTIVE_RESERVATION_STATUSES,
    CAGE_AVAILABLE,
    CAGE_OCCUPIED,
    CAGE_STATUSES,
    CAGE_TYPES,
    RESERVATION_CANCELLED,
    RESERVATION_CHECKED_OUT,
)
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_cage,
    validate_payload,
)
from pawpal.time_utils import days_between, parse_iso_date, today


CAGE_POLICY = ModelValidationPolicy(
    writable_fields={"cage_number", "cage_type", "capacity", "daily_rate", "status", "description"},
    required_on_create={"cage_number", "cage_type", "daily_rate"},
)


def parse_date_param(value: str | None, name: str) -> date | None:
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"Invalid {name}")


def overlapping_cage_ids(check_in: date, check_out: date, *, exclude_appointment_id: int | None = None):
    """
    Subquery of cage ids holding an active reservation that intersects
    [check_in, check_out] (inclusive).
    """
    stmt = select(CageReservation.cage_id).where(
        CageReservation.status.in_(ACTIVE_RESERVATION_STATUSES),
        CageReservation.check_in_date <= check_out,
        CageReservation.check_out_date >= check_in,
    )
    if exclude_appointment_id is not None:
        stmt = stmt.where(CageReservation.appointment_id != exclude_appointment_id)
    return stmt


def is_cage_free(cage_id: int, check_in: date, check_out: date, *, exclude_appointment_id: int | None = None) -> bool:
    stmt = overlapping_cage_ids(
        check_in, check_out, exclude_appointment_id=exclude_appointment_id
    ).where(CageReservation.cage_id == cage_id).limit(1)
    return db.session.execute(stmt).first() is None


def _normalize_filter(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if not value or value.lower() == "all":
        return None
    return value


def _cage_view(cage: Cage) -> dict:
    data = cage.to_dict()
    pet = cage.current_pet
    data["current_pet_name"] = pet.name if pet else None
    data["current_pet_species"] = pet.species if pet else None
    data["client_name"] = pet.owner.full_name if pet and pet.owner else None
    return data


def list_cages(
    *,
    status: str | None = None,
    cage_type: str | None = None,
    check_in: str | None = None,
    check_out: str | None = None,
) -> list[dict]:
    """
    Admin cage listing.

    When both dates are supplied, cages with an overlapping active
    reservation are excluded. Otherwise every cage matching the status and
    type filters is returned.
    """
    query = db.session.query(Cage)

    status = _normalize_filter(status)
    cage_type = _normalize_filter(cage_type)
    if status:
        query = query.filter(Cage.status == status)
    if cage_type:
        query = query.filter(Cage.cage_type == cage_type)

    ci = parse_date_param(_normalize_filter(check_in), "check_in")
    co = parse_date_param(_normalize_filter(check_out), "check_out")
    if ci and co:
        query = query.filter(Cage.id.not_in(overlapping_cage_ids(ci, co)))

    cages = query.order_by(Cage.cage_number.asc()).all()
    return [_cage_view(c) for c in cages]


def get_cage(cage_id: int) -> Cage:
    cage = db.session.get(Cage, cage_id)
    if cage is None:
        raise NotFoundError("Cage not found")
    return cage


def _require_valid_rate(raw) -> None:
    if isinstance(raw, bool):
        raise ValidationError("Valid daily rate is required")
    try:
        rate = float(raw)
    except (TypeError, ValueError):
        raise ValidationError("Valid daily rate is required")
    if rate <= 0:
        raise ValidationError("Valid daily rate is required")


def _cage_number_taken(cage_number: str, *, exclude_id: int | None = None) -> bool:
    query = db.session.query(Cage.id).filter(Cage.cage_number == cage_number)
    if exclude_id is not None:
        query = query.filter(Cage.id != exclude_id)
    return query.first() is not None


def _check_enums(patch: dict) -> None:
    if "cage_type" in patch and patch["cage_type"] not in CAGE_TYPES:
        raise ValidationError(f"Invalid cage type. Must be one of: {', '.join(CAGE_TYPES)}")
    if "status" in patch and patch["status"] not in CAGE_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(CAGE_STATUSES)}")


def create_cage(payload: dict) -> Cage:
    """
    Create a cage. Defaults: capacity 1, status available.

    Raises ValidationError for a missing number/type, a non-positive rate,
    or a duplicate cage number. No row is written on failure.
    """
    payload = dict(payload or {})
    if not str(payload.get("cage_number") or "").strip():
        raise ValidationError("Cage number is required")
    if not str(payload.get("cage_type") or "").strip():
        raise ValidationError("Cage type is required")
    _require_valid_rate(payload.get("daily_rate"))

    patch = validate_payload(model=Cage, payload=payload, policy=CAGE_POLICY, partial=False)
    enforce_rules_cage(patch)
    _check_enums(patch)

    if _cage_number_taken(patch["cage_number"]):
        raise ValidationError("Cage number already exists")

    if patch.get("capacity") is None:
        patch["capacity"] = 1
    if patch.get("status") is None:
        patch["status"] = CAGE_AVAILABLE

    cage = Cage(**patch)
    db.session.add(cage)
    db.session.commit()
    return cage


def update_cage(cage_id: int, payload: dict) -> Cage:
    """Partial update; a changed cage_number must stay unique."""
    cage = get_cage(cage_id)
    payload = dict(payload or {})

    if "cage_number" in payload and not str(payload.get("cage_number") or "").strip():
        raise ValidationError("Cage number is required")
    if "daily_rate" in payload:
        _require_valid_rate(payload.get("daily_rate"))

    patch = validate_payload(model=Cage, payload=payload, policy=CAGE_POLICY, partial=True)
    enforce_rules_cage(patch)
    _check_enums(patch)

    new_number = patch.get("cage_number")
    if new_number and new_number != cage.cage_number and _cage_number_taken(new_number, exclude_id=cage.id):
        raise ValidationError("Cage number already exists")

    for key, value in patch.items():
        if key in ("capacity", "status") and value is None:
            continue
        setattr(cage, key, value)

    db.session.commit()
    return cage


def delete_cage(cage_id: int) -> None:
    """
    Hard delete. Refused while the cage is occupied or any reservation on
    it is reserved/checked_in.
    """
    cage = get_cage(cage_id)

    if cage.status == CAGE_OCCUPIED:
        raise ValidationError("Cannot delete occupied cage")

    active = db.session.query(CageReservation.id).filter(
        CageReservation.cage_id == cage.id,
        CageReservation.status.in_(ACTIVE_RESERVATION_STATUSES),
    ).first()
    if active:
        raise ValidationError("Cannot delete cage with active reservations")

    # Historical reservations go with the cage
    db.session.query(CageReservation).filter(
        CageReservation.cage_id == cage.id
    ).delete(synchronize_session=False)
    db.session.delete(cage)
    db.session.commit()


def check_availability(check_in: str | None, check_out: str | None) -> dict:
    """
    Client availability search.

    Only cages in status available are offered, minus any with an
    overlapping active reservation. Each result carries total_days and
    total_amount (daily_rate * total_days).
    """
    if not check_in or not check_out:
        raise ValidationError("Check-in and check-out dates are required")

    ci = parse_date_param(check_in, "check-in date")
    co = parse_date_param(check_out, "check-out date")

    total_days = days_between(ci, co)
    if total_days <= 0:
        raise ValidationError("Check-out date must be after check-in date")

    cages = (
        db.session.query(Cage)
        .filter(
            Cage.status == CAGE_AVAILABLE,
            Cage.id.not_in(overlapping_cage_ids(ci, co)),
        )
        .order_by(Cage.cage_type.asc(), Cage.cage_number.asc())
        .all()
    )

    results = []
    for cage in cages:
        data = cage.to_dict()
        data["total_days"] = total_days
        data["total_amount"] = round(float(cage.daily_rate) * total_days, 2)
        results.append(data)

    return {
        "success": True,
        "check_in_date": ci.isoformat(),
        "check_out_date": co.isoformat(),
        "total_days": total_days,
        "cages": results,
    }


def _next_reservation(cage_id: int) -> CageReservation | None:
    return (
        db.session.query(CageReservation)
        .filter(
            CageReservation.cage_id == cage_id,
            CageReservation.check_in_date > today(),
            CageReservation.status.not_in((RESERVATION_CANCELLED, RESERVATION_CHECKED_OUT)),
        )
        .order_by(CageReservation.check_in_date.asc(), CageReservation.id.asc())
        .first()
    )


def boarding_overview() -> list[dict]:
    """Every cage with its current occupant and next upcoming reservation."""
    cages = db.session.query(Cage).order_by(Cage.cage_number.asc()).all()

    overview = []
    for cage in cages:
        data = _cage_view(cage)
        pet = cage.current_pet
        data["current_occupant"] = None
        if pet is not None:
            owner = pet.owner
            data["current_occupant"] = {
                "pet_id": pet.id,
                "pet_name": pet.name,
                "species": pet.species,
                "breed": pet.breed,
                "client_id": owner.id if owner else None,
                "client_name": owner.full_name if owner else None,
                "client_phone": owner.phone if owner else None,
                "appointment_id": cage.current_appointment_id,
                "check_in_date": data["check_in_date"],
                "check_out_date": data["check_out_date"],
            }

        upcoming = _next_reservation(cage.id)
        data["next_reservation"] = None
        if upcoming is not None:
            next_pet = db.session.get(Pet, upcoming.pet_id) if upcoming.pet_id else None
            data["next_reservation"] = {
                **upcoming.to_dict(),
                "pet_name": next_pet.name if next_pet else None,
                "client_name": next_pet.owner.full_name if next_pet and next_pet.owner else None,
            }
        overview.append(data)

    return overview
