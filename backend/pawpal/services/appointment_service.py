# Overview: Service-layer operations for appointments; encapsulates business logic and database work.

"""
Appointment Service

Booking, client self-service, admin status changes with the cage
lifecycle, boarding document review and medical records.

Every public mutation stages all of its rows (appointment, reservation,
cage, transaction, notifications, queued email) and commits once. Callers
dispatch queued email after the commit returns.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from ..extensions import db
from ..models import (
    Appointment,
    Cage,
    CageReservation,
    MedicalRecord,
    Pet,
    Service,
    User,
)
from ..models.appointments import (
    APPOINTMENT_STATUSES,
    PAYMENT_CASH,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
    STATUS_PENDING_PAYMENT,
    STATUS_REJECTED,
)
from ..models.boarding import (
    ACTIVE_RESERVATION_STATUSES,
    CAGE_OCCUPIED,
    RESERVATION_CANCELLED,
    RESERVATION_CHECKED_IN,
    RESERVATION_CHECKED_OUT,
    RESERVATION_RESERVED,
)
from ..validation import ConflictError, NotFoundError, ValidationError, parse_approved
from . import cage_service, notification_service, transaction_service
from .concurrency import lock_for_update
from pawpal.time_utils import days_between, parse_iso_date, to_iso_date, utcnow


CANCEL_NOTICE = timedelta(hours=24)
DOCUMENT_TYPES = {"id": "ID", "signature": "Signature"}


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def get_appointment(appointment_id: int) -> Appointment:
    appointment = db.session.get(Appointment, appointment_id)
    if appointment is None:
        raise NotFoundError("Appointment not found")
    return appointment


def get_owned_appointment(user: User, appointment_id: int) -> Appointment:
    appointment = db.session.query(Appointment).filter_by(id=appointment_id, user_id=user.id).first()
    if appointment is None:
        raise NotFoundError("Appointment not found")
    return appointment


def _pet_label(appointment: Appointment) -> str:
    names = [p.name for p in appointment.pets]
    return ", ".join(names) if names else "your pet"


def _active_reservation(appointment: Appointment) -> CageReservation | None:
    for reservation in appointment.reservations:
        if reservation.status in ACTIVE_RESERVATION_STATUSES:
            return reservation
    return None


def serialize(appointment: Appointment, *, include_client: bool = False) -> dict:
    data = appointment.to_dict(include_client=include_client)
    reservation = _active_reservation(appointment) or (
        appointment.reservations[-1] if appointment.reservations else None
    )
    data["cage_reservation_status"] = reservation.status if reservation else None
    data["reservation_total_amount"] = reservation.total_amount if reservation else None
    return data


# ---------------------------------------------------------------------------
# Client operations
# ---------------------------------------------------------------------------

def list_for_client(user: User) -> list[dict]:
    appointments = (
        db.session.query(Appointment)
        .filter(Appointment.user_id == user.id)
        .order_by(Appointment.appointment_date.desc(), Appointment.id.desc())
        .all()
    )
    return [serialize(a) for a in appointments]


def _parse_pet_ids(data: dict) -> list[int]:
    raw = data.get("pet_ids")
    if raw is None and data.get("pet_id") is not None:
        raw = [data.get("pet_id")]
    if not isinstance(raw, list) or not raw:
        raise ValidationError("Missing required fields")
    try:
        pet_ids = [int(p) for p in raw]
    except (TypeError, ValueError):
        raise ValidationError("pet_ids must be a list of pet ids")
    return list(dict.fromkeys(pet_ids))


def _parse_date(value, message: str):
    try:
        parsed = parse_iso_date(value)
    except ValueError:
        raise ValidationError(message)
    return parsed


def _parse_time(value):
    if not value:
        return None
    try:
        return datetime.strptime(str(value).strip()[:5], "%H:%M").time()
    except ValueError:
        raise ValidationError("appointment_time must be HH:MM")


def book(user: User, data: dict) -> Appointment:
    """
    Book an appointment for one or more of the client's pets.

    Boarding services (category name contains "boarding") also need a
    cage and stay dates; the cage must have no overlapping active
    reservation. Status starts as pending (cash) or pending payment.

    Raises:
        ValidationError, NotFoundError, ConflictError
    """
    data = data or {}
    pet_ids = _parse_pet_ids(data)
    service_id = data.get("service_id")
    payment_method = (data.get("payment_method") or "").strip().lower()
    if not service_id or not payment_method:
        raise ValidationError("Missing required fields")

    service = db.session.get(Service, service_id)
    if service is None:
        raise NotFoundError("Service not found")
    if not service.is_active:
        raise ValidationError("Service is not available")

    pets = db.session.query(Pet).filter(Pet.id.in_(pet_ids), Pet.user_id == user.id).all()
    if len(pets) != len(pet_ids):
        raise ValidationError("One or more pets were not found")

    appointment_date = _parse_date(data.get("appointment_date"), "Invalid appointment date")
    appointment_time = _parse_time(data.get("appointment_time"))

    cage = None
    check_in = check_out = None
    boarding_days = None
    reservation_total = None
    if service.is_boarding:
        cage_id = data.get("cage_id")
        check_in = _parse_date(data.get("check_in_date"), "Invalid check-in date")
        check_out = _parse_date(data.get("check_out_date"), "Invalid check-out date")
        if not cage_id or not check_in or not check_out:
            raise ValidationError("Cage and boarding dates are required for boarding services")

        boarding_days = days_between(check_in, check_out)
        if boarding_days <= 0:
            raise ValidationError("Check-out date must be after check-in date")

        # Held until commit so two bookings cannot both see the cage as free
        cage = lock_for_update(db.session.query(Cage).filter_by(id=cage_id)).first()
        if cage is None:
            raise NotFoundError("Selected cage does not exist")
        if not cage_service.is_cage_free(cage.id, check_in, check_out):
            raise ConflictError("Selected cage is not available for the chosen dates")

        reservation_total = round(float(cage.daily_rate) * boarding_days, 2)
        appointment_date = appointment_date or check_in

    if appointment_date is None:
        raise ValidationError("Missing required fields")

    total_amount = round(float(service.price) + (reservation_total or 0), 2)
    status = STATUS_PENDING if payment_method == PAYMENT_CASH else STATUS_PENDING_PAYMENT

    appointment = Appointment(
        user_id=user.id,
        service=service,
        cage_id=cage.id if cage else None,
        appointment_date=appointment_date,
        appointment_time=appointment_time,
        status=status,
        payment_method=payment_method,
        total_amount=total_amount,
        notes=(data.get("notes") or "").strip() or None,
        receipt_url=data.get("receipt_url") or None,
        check_in_date=check_in,
        check_out_date=check_out,
        boarding_days=boarding_days,
    )
    appointment.pets = pets
    db.session.add(appointment)

    if cage is not None:
        pet_names = ", ".join(p.name for p in pets)
        instructions = (data.get("boarding_instructions") or "").strip()
        db.session.add(CageReservation(
            cage=cage,
            appointment=appointment,
            pet_id=pets[0].id,
            check_in_date=check_in,
            check_out_date=check_out,
            status=RESERVATION_RESERVED,
            total_amount=reservation_total,
            special_instructions=f"{instructions} [Pets: {pet_names}]" if instructions else f"Pets: {pet_names}",
        ))

    transaction_service.open_for_appointment(appointment)
    db.session.flush()

    notification_service.notify_staff(
        title="New Appointment",
        message=f"{user.full_name} booked {service.name} for {_pet_label(appointment)} on {to_iso_date(appointment_date)}.",
        notification_type="appointment",
        related_type="appointment",
        related_id=appointment.id,
    )
    db.session.commit()
    return appointment


def cancel_for_client(user: User, appointment_id: int) -> Appointment:
    """
    Client cancellation: only unpaid pending appointments, and only at
    least 24 hours before the appointment starts.
    """
    appointment = get_owned_appointment(user, appointment_id)
    if appointment.status not in (STATUS_PENDING, STATUS_PENDING_PAYMENT):
        raise ValidationError("Only pending appointments can be cancelled")

    starts_at = datetime.combine(
        appointment.appointment_date,
        appointment.appointment_time or datetime.min.time(),
    )
    if starts_at - utcnow() < CANCEL_NOTICE:
        raise ValidationError("Appointments can only be cancelled at least 24 hours in advance")

    appointment.status = STATUS_CANCELLED
    _release_reservation(appointment, RESERVATION_CANCELLED)
    transaction_service.cancel_for_appointment(appointment.id)
    notification_service.notify_staff(
        title="Appointment Cancelled",
        message=f"{user.full_name} cancelled appointment #{appointment.id}.",
        notification_type="appointment_cancelled",
        related_type="appointment",
        related_id=appointment.id,
    )
    db.session.commit()
    return appointment


def attach_receipt(user: User, appointment_id: int, receipt_url: str) -> Appointment:
    """A new receipt resets verification; the admin reviews it again."""
    appointment = get_owned_appointment(user, appointment_id)
    if appointment.status in (STATUS_CANCELLED, STATUS_COMPLETED):
        raise ValidationError("Cannot upload a receipt for this appointment")
    appointment.receipt_url = receipt_url
    appointment.receipt_verified = False
    appointment.receipt_verified_at = None
    appointment.receipt_verified_by = None
    notification_service.notify_staff(
        title="Receipt Uploaded",
        message=f"A payment receipt was uploaded for appointment #{appointment.id}.",
        notification_type="payment",
        related_type="appointment",
        related_id=appointment.id,
    )
    db.session.commit()
    return appointment


def attach_boarding_document(user: User, appointment_id: int, document_type: str, url: str) -> Appointment:
    """Store a boarding ID or signature image and reset its review state."""
    if document_type not in DOCUMENT_TYPES:
        raise ValidationError("Invalid document type")
    appointment = get_owned_appointment(user, appointment_id)
    prefix = f"boarding_{document_type}"
    setattr(appointment, f"{prefix}_url", url)
    setattr(appointment, f"{prefix}_verified", False)
    setattr(appointment, f"{prefix}_verified_at", None)
    setattr(appointment, f"{prefix}_verified_by", None)
    setattr(appointment, f"{prefix}_rejection_reason", None)
    db.session.commit()
    return appointment


def reupload_documents(user: User, appointment_id: int) -> Appointment:
    """
    Reopen document review on a rejected appointment.

    Only appointments in status rejected qualify; anything else is a
    ValidationError and nothing is modified.
    """
    appointment = get_owned_appointment(user, appointment_id)
    if appointment.status != STATUS_REJECTED:
        raise ValidationError("Only rejected appointments can have documents re-uploaded")

    for prefix in ("boarding_id", "boarding_signature"):
        setattr(appointment, f"{prefix}_verified", False)
        setattr(appointment, f"{prefix}_verified_at", None)
        setattr(appointment, f"{prefix}_verified_by", None)
        setattr(appointment, f"{prefix}_rejection_reason", None)
    appointment.status = STATUS_PENDING

    notification_service.notify_staff(
        title="Documents Re-uploaded",
        message=f"A client has re-uploaded boarding documents for appointment #{appointment.id}",
        notification_type="appointment",
        related_type="appointment",
        related_id=appointment.id,
    )
    db.session.commit()
    return appointment


# ---------------------------------------------------------------------------
# Admin operations
# ---------------------------------------------------------------------------

def list_for_admin(*, status: str | None = None, search: str | None = None) -> list[dict]:
    query = db.session.query(Appointment).join(User, Appointment.user_id == User.id)
    if status and status != "all":
        query = query.filter(Appointment.status == status)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(
            User.first_name.ilike(like),
            User.last_name.ilike(like),
            User.email.ilike(like),
        ))
    appointments = query.order_by(
        Appointment.created_at.desc(),
        Appointment.appointment_date.desc(),
        Appointment.id.desc(),
    ).all()
    return [serialize(a, include_client=True) for a in appointments]


def details(appointment_id: int) -> dict:
    appointment = get_appointment(appointment_id)
    data = serialize(appointment, include_client=True)
    data["reservations"] = [r.to_dict() for r in appointment.reservations]
    data["transactions"] = [t.to_dict() for t in transaction_service.for_appointment(appointment.id)]
    data["medical_records"] = [
        r.to_dict() for r in db.session.query(MedicalRecord)
        .filter(MedicalRecord.appointment_id == appointment.id)
        .order_by(MedicalRecord.id.asc())
        .all()
    ]
    return data


def _release_reservation(appointment: Appointment, reservation_status: str) -> None:
    """Close the active reservation and free the cage if this stay holds it."""
    reservation = _active_reservation(appointment)
    if reservation is not None:
        reservation.status = reservation_status
    cage = appointment.cage
    if cage is not None and cage.current_appointment_id == appointment.id:
        cage.free()


def _check_in(appointment: Appointment) -> None:
    reservation = _active_reservation(appointment)
    if reservation is not None:
        reservation.status = RESERVATION_CHECKED_IN
    cage = appointment.cage
    if cage is not None:
        cage.status = CAGE_OCCUPIED
        cage.current_pet_id = appointment.pets[0].id if appointment.pets else None
        cage.current_appointment_id = appointment.id
        cage.check_in_date = appointment.check_in_date or appointment.appointment_date
        cage.check_out_date = appointment.check_out_date


STATUS_MESSAGES = {
    "confirmed": ("Appointment Confirmed", "appointment_confirmed",
                  "Your appointment for {pets} has been confirmed for {date}."),
    "paid": ("Payment Verified", "success",
             "Your payment for {pets}'s appointment has been verified and approved."),
    "pending payment": ("Payment Required", "error",
                        "Your receipt for {pets}'s appointment was rejected. Please upload a new receipt."),
    "completed": ("Appointment Completed", "success",
                  "Your appointment for {pets} has been completed.{notes}"),
    "cancelled": ("Appointment Cancelled", "error",
                  "Your appointment for {pets} has been cancelled.{notes}"),
    "in_progress": ("Appointment Started", "info",
                    "Your appointment for {pets} is now in progress."),
}


def update_status(staff: User, appointment_id: int, data: dict) -> Appointment:
    """
    Admin status change with the cage lifecycle:
    - in_progress: reservation checked_in, cage occupied by this stay
    - completed: reservation checked_out, cage freed, transaction completed
    - cancelled / rejected: reservation cancelled, cage freed

    Moving to in_progress or completed needs a verified receipt unless the
    appointment is paid in cash.
    """
    appointment = get_appointment(appointment_id)
    data = data or {}
    new_status = data.get("status")
    notes = (data.get("notes") or "").strip() or None

    if new_status is None and notes is None:
        raise ValidationError("Nothing to update")
    if new_status is not None and new_status not in APPOINTMENT_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(APPOINTMENT_STATUSES)}")

    if new_status in (STATUS_IN_PROGRESS, STATUS_COMPLETED):
        if not appointment.is_cash and not appointment.receipt_verified:
            raise ValidationError("Payment must be verified before changing status to in progress or completed")

    old_status = appointment.status
    if notes is not None:
        appointment.notes = notes

    if new_status is not None and new_status != old_status:
        appointment.status = new_status
        if new_status == STATUS_IN_PROGRESS:
            _check_in(appointment)
        elif new_status == STATUS_COMPLETED:
            _release_reservation(appointment, RESERVATION_CHECKED_OUT)
            transaction_service.complete_for_appointment(appointment.id)
        elif new_status in (STATUS_CANCELLED, STATUS_REJECTED):
            _release_reservation(appointment, RESERVATION_CANCELLED)
            transaction_service.cancel_for_appointment(appointment.id)

        title, kind, template = STATUS_MESSAGES.get(
            new_status,
            ("Appointment Updated", "info", "Your appointment for {pets} has been updated to {status}."),
        )
        note_suffix = ""
        if notes and new_status == STATUS_COMPLETED:
            note_suffix = f" Notes: {notes}"
        elif notes and new_status == STATUS_CANCELLED:
            note_suffix = f" Reason: {notes}"
        notification_service.notify(
            appointment.user,
            title=title,
            message=template.format(
                pets=_pet_label(appointment),
                date=to_iso_date(appointment.appointment_date),
                status=new_status,
                notes=note_suffix,
            ),
            notification_type=kind,
            related_type="appointment",
            related_id=appointment.id,
            action_path=f"/client/appointments/{appointment.id}",
            action_text="View Appointment",
        )

    db.session.commit()
    return appointment


def delete_appointment(appointment_id: int) -> None:
    """Admin delete. The owner is told; the cage is released first."""
    appointment = get_appointment(appointment_id)
    _release_reservation(appointment, RESERVATION_CANCELLED)
    transaction_service.cancel_for_appointment(appointment.id)
    for txn in transaction_service.for_appointment(appointment.id):
        txn.appointment = None
    db.session.query(MedicalRecord).filter(
        MedicalRecord.appointment_id == appointment.id
    ).update({MedicalRecord.appointment_id: None}, synchronize_session=False)

    notification_service.notify(
        appointment.user,
        title="Appointment Deleted",
        message=(
            f"Your appointment for {_pet_label(appointment)} scheduled for "
            f"{to_iso_date(appointment.appointment_date)} has been deleted by the administrator."
        ),
        notification_type="appointment_deleted",
        related_type="appointment",
        related_id=appointment.id,
    )
    db.session.delete(appointment)
    db.session.commit()


def verify_documents(staff: User, appointment_id: int, data: dict) -> tuple[Appointment, str]:
    """
    Approve or reject one boarding document.

    Rejection requires a reason and moves the appointment to rejected.
    When both documents end up verified, an extra notification follows.
    Returns (appointment, summary message).
    """
    data = data or {}
    document_type = data.get("documentType") or data.get("document_type")
    reason = (data.get("rejectionReason") or data.get("rejection_reason") or "").strip()

    if document_type not in DOCUMENT_TYPES:
        raise ValidationError("Invalid document type")
    approved = parse_approved(data)
    if not approved and not reason:
        raise ValidationError("Rejection reason is required")

    appointment = get_appointment(appointment_id)
    prefix = f"boarding_{document_type}"
    now = utcnow()
    setattr(appointment, f"{prefix}_verified", approved)
    setattr(appointment, f"{prefix}_verified_at", now if approved else None)
    setattr(appointment, f"{prefix}_verified_by", staff.id if approved else None)
    setattr(appointment, f"{prefix}_rejection_reason", None if approved else reason)

    label = DOCUMENT_TYPES[document_type]
    noun = "ID document" if document_type == "id" else "signature"
    if approved:
        notification_service.notify(
            appointment.user,
            title=f"{label} Verified",
            message=f"Your {noun} has been verified for your boarding reservation.",
            notification_type="success",
            related_type="appointment",
            related_id=appointment.id,
        )
    else:
        appointment.status = STATUS_REJECTED
        notification_service.notify(
            appointment.user,
            title=f"{label} Rejected - Appointment Rejected",
            message=(
                f"Your {noun} was rejected. Reason: {reason}. Your appointment has been marked as "
                "rejected. Please contact us to resubmit."
            ),
            notification_type="error",
            related_type="appointment",
            related_id=appointment.id,
            action_path=f"/client/appointments/{appointment.id}",
            action_text="Re-upload Documents",
        )

    if approved and appointment.boarding_id_verified and appointment.boarding_signature_verified:
        notification_service.notify(
            appointment.user,
            title="All Documents Verified",
            message="All your boarding documents have been verified! Your reservation is ready to proceed.",
            notification_type="success",
            related_type="appointment",
            related_id=appointment.id,
        )

    db.session.commit()
    summary = f"{label} {'verified' if approved else 'rejected'} successfully"
    if not approved:
        summary += ". Appointment status changed to rejected."
    return appointment, summary


# ---------------------------------------------------------------------------
# Medical records
# ---------------------------------------------------------------------------

def add_medical_record(staff: User, appointment_id: int, data: dict) -> list[MedicalRecord]:
    """Record a visit outcome for each pet on the appointment."""
    data = data or {}
    diagnosis = (data.get("diagnosis") or "").strip()
    if not diagnosis:
        raise ValidationError("Diagnosis is required")

    appointment = get_appointment(appointment_id)
    pets = appointment.pets
    if data.get("pet_id"):
        try:
            pet_id = int(data["pet_id"])
        except (TypeError, ValueError):
            raise ValidationError("pet_id must be an integer")
        pets = [p for p in pets if p.id == pet_id]
        if not pets:
            raise ValidationError("Pet is not part of this appointment")
    if not pets:
        raise ValidationError("Appointment has no pets")

    records = []
    for pet in pets:
        record = MedicalRecord(
            pet_id=pet.id,
            appointment_id=appointment.id,
            veterinarian_id=staff.id,
            diagnosis=diagnosis,
            treatment=(data.get("treatment") or "").strip() or None,
            prescription=(data.get("prescription") or "").strip() or None,
            notes=(data.get("notes") or "").strip() or None,
            record_date=appointment.appointment_date,
        )
        db.session.add(record)
        records.append(record)

    notification_service.notify(
        appointment.user,
        title="Medical Record Added",
        message=f"A medical record was added for {_pet_label(appointment)}.",
        notification_type="info",
        related_type="appointment",
        related_id=appointment.id,
    )
    db.session.commit()
    return records
