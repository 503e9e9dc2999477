# Overview: Flask API routes for appointments operations; parses input and returns JSON responses.

"""
Appointment routes for clients and staff.

Client routes (/api/client/appointments) are scoped to the caller's own
appointments. Admin routes (/api/admin/appointments) require admin or
employee; deleting requires admin.
"""

from flask import Blueprint, request, current_app, g

from ..extensions import db
from ..services import appointment_service
from ..services import upload_service
from ..services import verification_service
from ..validation import ValidationError, ConflictError, NotFoundError
from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN, STAFF_ROLES


appointments_bp = Blueprint("appointments", __name__)

DOCUMENT_DIRECTORIES = {
    "id": upload_service.BOARDING_IDS,
    "signature": upload_service.BOARDING_SIGNATURES,
}


# =============================================================================
# CLIENT
# =============================================================================

@appointments_bp.get("/api/client/appointments")
@require_auth
def list_my_appointments_route():
    try:
        appointments = appointment_service.list_for_client(g.current_user)
    except Exception:
        current_app.logger.exception("Failed to fetch appointments")
        return {"error": "Internal server error"}, 500
    return {"appointments": appointments}


@appointments_bp.get("/api/client/appointments/<int:appointment_id>")
@require_auth
def get_my_appointment_route(appointment_id: int):
    try:
        appointment = appointment_service.get_owned_appointment(g.current_user, appointment_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return {"appointment": appointment_service.serialize(appointment)}


@appointments_bp.post("/api/client/appointments")
@require_auth
def book_appointment_route():
    """
    Book an appointment.

    Body: pet_ids, service_id, appointment_date, appointment_time,
    payment_method, notes, receipt_url; boarding services also take
    cage_id, check_in_date, check_out_date.
    """
    data = request.get_json(silent=True) or {}
    try:
        appointment = appointment_service.book(g.current_user, data)
    except ConflictError as e:
        db.session.rollback()
        return {"error": str(e)}, 409
    except NotFoundError as e:
        db.session.rollback()
        return {"error": str(e)}, 404
    except ValidationError as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to book appointment")
        return {"error": "Internal server error"}, 500

    return {
        "message": "Appointment booked successfully",
        "appointment": appointment_service.serialize(appointment),
    }, 201


@appointments_bp.post("/api/client/appointments/<int:appointment_id>/cancel")
@require_auth
def cancel_my_appointment_route(appointment_id: int):
    """Only pending appointments at least 24 hours ahead can be cancelled."""
    try:
        appointment = appointment_service.cancel_for_client(g.current_user, appointment_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to cancel appointment %s", appointment_id)
        return {"error": "Internal server error"}, 500

    return {
        "message": "Appointment cancelled successfully",
        "appointment": appointment_service.serialize(appointment),
    }


@appointments_bp.post("/api/client/appointments/upload-receipt")
@require_auth
def upload_booking_receipt_route():
    """
    Store a receipt before the appointment exists.

    The returned URL is sent back as receipt_url when booking.
    """
    try:
        url = upload_service.save_image(
            request.files.get("file"),
            subdir=upload_service.RECEIPTS,
            prefix="receipt",
            owner_id=g.current_user.id,
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to upload receipt")
        return {"error": "Internal server error"}, 500

    return {"message": "Receipt uploaded successfully", "url": url}, 201


@appointments_bp.post("/api/client/appointments/<int:appointment_id>/receipt")
@require_auth
def upload_appointment_receipt_route(appointment_id: int):
    """Upload a payment receipt; verification starts over."""
    url = None
    try:
        appointment_service.get_owned_appointment(g.current_user, appointment_id)
        url = upload_service.save_image(
            request.files.get("file"),
            subdir=upload_service.RECEIPTS,
            prefix="receipt",
            owner_id=appointment_id,
        )
        appointment = appointment_service.attach_receipt(g.current_user, appointment_id, url)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        db.session.rollback()
        upload_service.delete_upload(url)
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        upload_service.delete_upload(url)
        current_app.logger.exception("Failed to upload receipt for appointment %s", appointment_id)
        return {"error": "Internal server error"}, 500

    return {
        "message": "Receipt uploaded successfully",
        "url": url,
        "appointment": appointment_service.serialize(appointment),
    }


@appointments_bp.post("/api/client/appointments/<int:appointment_id>/documents/<document_type>")
@require_auth
def upload_boarding_document_route(appointment_id: int, document_type: str):
    """Upload a boarding ID (document_type=id) or signature (document_type=signature)."""
    if document_type not in DOCUMENT_DIRECTORIES:
        return {"error": "Invalid document type"}, 400

    url = None
    try:
        appointment_service.get_owned_appointment(g.current_user, appointment_id)
        url = upload_service.save_image(
            request.files.get("file"),
            subdir=DOCUMENT_DIRECTORIES[document_type],
            prefix=f"boarding_{document_type}",
            owner_id=appointment_id,
        )
        appointment = appointment_service.attach_boarding_document(
            g.current_user, appointment_id, document_type, url
        )
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        db.session.rollback()
        upload_service.delete_upload(url)
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        upload_service.delete_upload(url)
        current_app.logger.exception("Failed to upload boarding document for appointment %s", appointment_id)
        return {"error": "Internal server error"}, 500

    return {
        "message": "Document uploaded successfully",
        "url": url,
        "appointment": appointment_service.serialize(appointment),
    }


@appointments_bp.post("/api/client/appointments/<int:appointment_id>/reupload-documents")
@require_auth
def reupload_documents_route(appointment_id: int):
    """
    Reopen document review on a rejected appointment.

    WHY: A rejected client uploads new documents first, then calls this to
    clear both verification states and put the appointment back to pending.
    """
    try:
        appointment = appointment_service.reupload_documents(g.current_user, appointment_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to re-upload documents for appointment %s", appointment_id)
        return {"error": "Internal server error"}, 500

    return {
        "success": True,
        "message": "Documents re-uploaded successfully. Your appointment is now pending review.",
        "appointment": appointment_service.serialize(appointment),
    }


# =============================================================================
# ADMIN
# =============================================================================

@appointments_bp.get("/api/admin/appointments")
@require_auth
@require_role(*STAFF_ROLES)
def list_appointments_route():
    """
    Query params:
    - status: filter by status ("all" for every status)
    - search: client name or email
    """
    try:
        appointments = appointment_service.list_for_admin(
            status=request.args.get("status"),
            search=request.args.get("search"),
        )
    except Exception:
        current_app.logger.exception("Failed to fetch appointments")
        return {"error": "Internal server error"}, 500
    return {"appointments": appointments}


@appointments_bp.get("/api/admin/appointments/<int:appointment_id>")
@require_auth
@require_role(*STAFF_ROLES)
def appointment_details_route(appointment_id: int):
    try:
        appointment = appointment_service.details(appointment_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return {"appointment": appointment}


@appointments_bp.patch("/api/admin/appointments/<int:appointment_id>")
@require_auth
@require_role(*STAFF_ROLES)
def update_appointment_route(appointment_id: int):
    """Change status and/or notes. Drives the cage lifecycle and notifies the owner."""
    data = request.get_json(silent=True) or {}
    try:
        appointment = appointment_service.update_status(g.current_user, appointment_id, data)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update appointment %s", appointment_id)
        return {"error": "Internal server error"}, 500

    return {
        "message": "Appointment updated successfully",
        "appointment": appointment_service.serialize(appointment, include_client=True),
    }


@appointments_bp.delete("/api/admin/appointments/<int:appointment_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_appointment_route(appointment_id: int):
    try:
        appointment_service.delete_appointment(appointment_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete appointment %s", appointment_id)
        return {"error": "Internal server error"}, 500

    return {"message": "Appointment deleted successfully"}


@appointments_bp.post("/api/admin/appointments/<int:appointment_id>/verify-receipt")
@require_auth
@require_role(*STAFF_ROLES)
def verify_appointment_receipt_route(appointment_id: int):
    """
    Approve or reject the uploaded receipt.

    Body: {"approved": true|false}

    Approval marks the appointment paid and completes its transaction;
    rejection returns it to pending payment. The owner is notified either way.
    """
    data = request.get_json(silent=True) or {}
    try:
        appointment, message = verification_service.verify_appointment_receipt(
            g.current_user, appointment_id, data
        )
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to verify receipt for appointment %s", appointment_id)
        return {"error": "Internal server error"}, 500

    return {
        "message": message,
        "appointment": appointment_service.serialize(appointment, include_client=True),
    }


@appointments_bp.post("/api/admin/appointments/<int:appointment_id>/verify-documents")
@require_auth
@require_role(*STAFF_ROLES)
def verify_documents_route(appointment_id: int):
    """
    Body: {"documentType": "id"|"signature", "approved": bool, "rejectionReason": str}
    """
    data = request.get_json(silent=True) or {}
    try:
        appointment, message = appointment_service.verify_documents(g.current_user, appointment_id, data)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to verify documents for appointment %s", appointment_id)
        return {"error": "Internal server error"}, 500

    return {
        "success": True,
        "message": message,
        "appointment": appointment_service.serialize(appointment, include_client=True),
    }


@appointments_bp.post("/api/admin/appointments/<int:appointment_id>/medical-record")
@require_auth
@require_role(*STAFF_ROLES)
def add_medical_record_route(appointment_id: int):
    data = request.get_json(silent=True) or {}
    try:
        records = appointment_service.add_medical_record(g.current_user, appointment_id, data)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to add medical record for appointment %s", appointment_id)
        return {"error": "Internal server error"}, 500

    return {
        "message": "Medical record added successfully",
        "records": [r.to_dict() for r in records],
    }, 201
