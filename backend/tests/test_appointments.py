"""
Appointment workflow tests.

Verifies:
- Booking (plain and boarding) with cage conflict detection (409)
- Receipt verification moves appointment and transaction together
- Boarding document review and the rejected -> re-upload path
- Admin status changes drive the cage lifecycle
- Client cancellation rules
"""

import io
from datetime import date, timedelta
from pathlib import Path

import pytest

from pawpal.models import (
    Appointment,
    Cage,
    CageReservation,
    EmailOutbox,
    MedicalRecord,
    Notification,
    Transaction,
)
from pawpal.services import appointment_service


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def png_upload(name="receipt.png"):
    return {"file": (io.BytesIO(PNG_BYTES), name, "image/png")}


def in_days(days: int) -> str:
    return (date.today() + timedelta(days=days)).isoformat()


def book_boarding(client, headers, pet, service, cage, check_in, check_out, **extra):
    payload = {
        "pet_ids": [pet.id],
        "service_id": service.id,
        "cage_id": cage.id,
        "check_in_date": check_in,
        "check_out_date": check_out,
        "payment_method": "gcash",
        "receipt_url": "/uploads/receipts/receipt_1_1700000000000.png",
    }
    payload.update(extra)
    return client.post("/api/client/appointments", headers=headers, json=payload)


@pytest.fixture
def booked(client, client_headers, pet, boarding_service, cage, admin_user):
    """A non-cash boarding appointment for cage 7 with a receipt on file."""
    resp = book_boarding(client, client_headers, pet, boarding_service, cage, in_days(10), in_days(13))
    assert resp.status_code == 201, resp.json
    return resp.json["appointment"]


# =============================================================================
# BOOKING
# =============================================================================


class TestBooking:

    def test_cage_row_is_locked_before_the_overlap_check(self, client, client_headers, pet, boarding_service, cage, monkeypatch):
        locked = []

        def record(query):
            locked.append(query.column_descriptions[0]["entity"])
            return query.with_for_update()

        monkeypatch.setattr(appointment_service, "lock_for_update", record)
        resp = book_boarding(client, client_headers, pet, boarding_service, cage, in_days(10), in_days(12))
        assert resp.status_code == 201
        assert locked == [Cage]

    def test_plain_booking_is_pending_payment(self, client, client_headers, pet, grooming_service, db_session):
        resp = client.post("/api/client/appointments", headers=client_headers, json={
            "pet_ids": [pet.id],
            "service_id": grooming_service.id,
            "appointment_date": in_days(5),
            "appointment_time": "10:30",
            "payment_method": "gcash",
        })
        assert resp.status_code == 201
        appt = resp.json["appointment"]
        assert appt["status"] == "pending payment"
        assert appt["appointment_time"] == "10:30"
        assert appt["total_amount"] == 500
        assert appt["pet_names"] == "Mochi"

        txn = db_session.query(Transaction).filter_by(appointment_id=appt["id"]).one()
        assert txn.status == "pending"
        assert txn.transaction_type == "appointment"

    def test_cash_booking_is_pending(self, client, client_headers, pet, grooming_service):
        resp = client.post("/api/client/appointments", headers=client_headers, json={
            "pet_ids": [pet.id],
            "service_id": grooming_service.id,
            "appointment_date": in_days(5),
            "payment_method": "cash",
        })
        assert resp.status_code == 201
        assert resp.json["appointment"]["status"] == "pending"

    def test_boarding_booking_creates_reservation(self, booked, db_session):
        assert booked["boarding_days"] == 3
        # service 200 + 3 days at 350
        assert booked["total_amount"] == 1250
        assert booked["cage_reservation_status"] == "reserved"
        assert booked["reservation_total_amount"] == 1050

        reservation = db_session.query(CageReservation).filter_by(appointment_id=booked["id"]).one()
        assert reservation.status == "reserved"
        assert "Mochi" in reservation.special_instructions

    def test_booking_notifies_admins(self, booked, admin_user, db_session):
        notes = db_session.query(Notification).filter_by(user_id=admin_user.id).all()
        assert [n.title for n in notes] == ["New Appointment"]

    def test_overlapping_boarding_booking_conflicts(
        self, client, client_headers, pet, boarding_service, cage, booked, db_session
    ):
        resp = book_boarding(client, client_headers, pet, boarding_service, cage, in_days(12), in_days(15))
        assert resp.status_code == 409
        assert resp.json["error"] == "Selected cage is not available for the chosen dates"
        assert db_session.query(Appointment).count() == 1

    def test_back_to_back_stay_on_same_day_conflicts(
        self, client, client_headers, pet, boarding_service, cage, booked
    ):
        resp = book_boarding(client, client_headers, pet, boarding_service, cage, in_days(13), in_days(16))
        assert resp.status_code == 409

    def test_boarding_without_cage_rejected(self, client, client_headers, pet, boarding_service):
        resp = client.post("/api/client/appointments", headers=client_headers, json={
            "pet_ids": [pet.id],
            "service_id": boarding_service.id,
            "payment_method": "cash",
            "check_in_date": in_days(3),
            "check_out_date": in_days(4),
        })
        assert resp.status_code == 400

    def test_unknown_cage_returns_404(self, client, client_headers, pet, boarding_service):
        resp = client.post("/api/client/appointments", headers=client_headers, json={
            "pet_ids": [pet.id],
            "service_id": boarding_service.id,
            "cage_id": 9999,
            "payment_method": "cash",
            "check_in_date": in_days(3),
            "check_out_date": in_days(4),
        })
        assert resp.status_code == 404

    def test_cannot_book_someone_elses_pet(self, client, other_headers, pet, grooming_service):
        resp = client.post("/api/client/appointments", headers=other_headers, json={
            "pet_ids": [pet.id],
            "service_id": grooming_service.id,
            "appointment_date": in_days(5),
            "payment_method": "cash",
        })
        assert resp.status_code == 400
        assert resp.json["error"] == "One or more pets were not found"

    def test_missing_fields_rejected(self, client, client_headers):
        resp = client.post("/api/client/appointments", headers=client_headers, json={})
        assert resp.status_code == 400
        assert resp.json["error"] == "Missing required fields"

    def test_client_sees_only_own_appointments(self, client, client_headers, other_headers, booked):
        mine = client.get("/api/client/appointments", headers=client_headers)
        theirs = client.get("/api/client/appointments", headers=other_headers)
        assert [a["id"] for a in mine.json["appointments"]] == [booked["id"]]
        assert theirs.json["appointments"] == []

        resp = client.get(f"/api/client/appointments/{booked['id']}", headers=other_headers)
        assert resp.status_code == 404


# =============================================================================
# RECEIPT VERIFICATION
# =============================================================================


class TestAppointmentReceiptVerification:

    def test_approve_marks_paid_and_completes_transaction(
        self, client, admin_headers, booked, client_user, db_session
    ):
        resp = client.post(
            f"/api/admin/appointments/{booked['id']}/verify-receipt",
            headers=admin_headers,
            json={"approved": True},
        )
        assert resp.status_code == 200
        assert resp.json["message"] == "Receipt verified and appointment marked as paid successfully"
        assert resp.json["appointment"]["status"] == "paid"
        assert resp.json["appointment"]["receipt_verified"] is True

        txn = db_session.query(Transaction).filter_by(appointment_id=booked["id"]).one()
        assert txn.status == "completed"

        note = db_session.query(Notification).filter_by(user_id=client_user.id).one()
        assert note.title == "Payment Verified"
        assert note.type == "payment_verified"

        # No SMTP server configured: the email stays queued
        outbox = db_session.query(EmailOutbox).filter_by(to_address=client_user.email).one()
        assert outbox.status == "pending"
        assert "Payment Verified" in outbox.subject

    def test_reject_keeps_transaction_pending(self, client, admin_headers, booked, client_user, db_session):
        resp = client.post(
            f"/api/admin/appointments/{booked['id']}/verify-receipt",
            headers=admin_headers,
            json={"approved": False},
        )
        assert resp.status_code == 200
        assert resp.json["message"] == "Receipt rejected successfully"
        assert resp.json["appointment"]["status"] == "pending payment"
        assert resp.json["appointment"]["receipt_verified"] is False

        txn = db_session.query(Transaction).filter_by(appointment_id=booked["id"]).one()
        assert txn.status == "pending"

        note = db_session.query(Notification).filter_by(user_id=client_user.id).one()
        assert note.title == "Receipt Rejected"

    def test_approved_flag_required(self, client, admin_headers, booked):
        resp = client.post(
            f"/api/admin/appointments/{booked['id']}/verify-receipt",
            headers=admin_headers,
            json={},
        )
        assert resp.status_code == 400

    def test_no_receipt_on_file(self, client, admin_headers, client_headers, pet, grooming_service):
        created = client.post("/api/client/appointments", headers=client_headers, json={
            "pet_ids": [pet.id],
            "service_id": grooming_service.id,
            "appointment_date": in_days(5),
            "payment_method": "cash",
        })
        resp = client.post(
            f"/api/admin/appointments/{created.json['appointment']['id']}/verify-receipt",
            headers=admin_headers,
            json={"approved": True},
        )
        assert resp.status_code == 400
        assert resp.json["error"] == "No receipt found for this appointment"

    def test_unknown_appointment(self, client, admin_headers):
        resp = client.post("/api/admin/appointments/9999/verify-receipt", headers=admin_headers, json={"approved": True})
        assert resp.status_code == 404

    def test_new_receipt_resets_verification(self, client, admin_headers, client_headers, booked, db_session):
        client.post(
            f"/api/admin/appointments/{booked['id']}/verify-receipt",
            headers=admin_headers,
            json={"approved": True},
        )

        resp = client.post(
            f"/api/client/appointments/{booked['id']}/receipt",
            headers=client_headers,
            data=png_upload(),
            content_type="multipart/form-data",
        )
        assert resp.status_code == 200
        assert resp.json["url"].startswith("/uploads/receipts/receipt_")
        assert resp.json["appointment"]["receipt_verified"] is False

    def test_oversized_receipt_rejected(self, app, client, client_headers, booked):
        receipts_dir = Path(app.config["UPLOAD_FOLDER"]) / "receipts"
        before = sorted(receipts_dir.iterdir()) if receipts_dir.exists() else []
        too_big = PNG_BYTES + b"\x00" * app.config["MAX_UPLOAD_BYTES"]

        resp = client.post(
            f"/api/client/appointments/{booked['id']}/receipt",
            headers=client_headers,
            data={"file": (io.BytesIO(too_big), "receipt.png", "image/png")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400
        assert resp.json["error"] == "File size must be less than 5MB"

        after = sorted(receipts_dir.iterdir()) if receipts_dir.exists() else []
        assert after == before


# =============================================================================
# BOARDING DOCUMENTS
# =============================================================================


class TestBoardingDocuments:

    def _reject_id(self, client, headers, appointment_id):
        return client.post(
            f"/api/admin/appointments/{appointment_id}/verify-documents",
            headers=headers,
            json={"documentType": "id", "approved": False, "rejectionReason": "Blurry photo"},
        )

    def test_upload_document(self, client, client_headers, booked):
        resp = client.post(
            f"/api/client/appointments/{booked['id']}/documents/signature",
            headers=client_headers,
            data=png_upload("signature.png"),
            content_type="multipart/form-data",
        )
        assert resp.status_code == 200
        assert resp.json["url"].startswith("/uploads/boarding-signatures/boarding_signature_")
        assert resp.json["appointment"]["boarding_signature_url"] == resp.json["url"]

    def test_unknown_document_type(self, client, client_headers, booked):
        resp = client.post(
            f"/api/client/appointments/{booked['id']}/documents/passport",
            headers=client_headers,
            data=png_upload(),
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400

    def test_rejection_requires_reason(self, client, admin_headers, booked):
        resp = client.post(
            f"/api/admin/appointments/{booked['id']}/verify-documents",
            headers=admin_headers,
            json={"documentType": "id", "approved": False},
        )
        assert resp.status_code == 400
        assert resp.json["error"] == "Rejection reason is required"

    def test_string_false_is_a_rejection(self, client, admin_headers, booked):
        resp = client.post(
            f"/api/admin/appointments/{booked['id']}/verify-documents",
            headers=admin_headers,
            json={"documentType": "id", "approved": "false", "rejectionReason": "Expired ID"},
        )
        assert resp.status_code == 200
        assert resp.json["appointment"]["status"] == "rejected"
        assert resp.json["appointment"]["boarding_id_verified"] is False
        assert resp.json["appointment"]["boarding_id_rejection_reason"] == "Expired ID"

    def test_rejection_marks_appointment_rejected(self, client, admin_headers, booked, client_user, db_session):
        resp = self._reject_id(client, admin_headers, booked["id"])
        assert resp.status_code == 200
        assert resp.json["message"] == "ID rejected successfully. Appointment status changed to rejected."
        appt = resp.json["appointment"]
        assert appt["status"] == "rejected"
        assert appt["boarding_id_verified"] is False
        assert appt["boarding_id_rejection_reason"] == "Blurry photo"

    def test_both_approved_sends_summary_notification(self, client, admin_headers, booked, client_user, db_session):
        for document_type in ("id", "signature"):
            resp = client.post(
                f"/api/admin/appointments/{booked['id']}/verify-documents",
                headers=admin_headers,
                json={"documentType": document_type, "approved": True},
            )
            assert resp.status_code == 200

        titles = [n.title for n in db_session.query(Notification).filter_by(user_id=client_user.id).order_by(Notification.id)]
        assert titles == ["ID Verified", "Signature Verified", "All Documents Verified"]

    def test_reupload_returns_rejected_appointment_to_pending(
        self, client, admin_headers, client_headers, booked, db_session
    ):
        self._reject_id(client, admin_headers, booked["id"])

        resp = client.post(f"/api/client/appointments/{booked['id']}/reupload-documents", headers=client_headers)
        assert resp.status_code == 200
        assert resp.json["success"] is True
        appt = resp.json["appointment"]
        assert appt["status"] == "pending"
        assert appt["boarding_id_verified"] is False
        assert appt["boarding_id_rejection_reason"] is None
        assert appt["boarding_signature_rejection_reason"] is None

    def test_reupload_refused_unless_rejected(self, client, client_headers, booked, db_session):
        resp = client.post(f"/api/client/appointments/{booked['id']}/reupload-documents", headers=client_headers)
        assert resp.status_code == 400
        assert resp.json["error"] == "Only rejected appointments can have documents re-uploaded"

        db_session.expire_all()
        assert db_session.get(Appointment, booked["id"]).status == "pending payment"

    def test_reupload_of_other_clients_appointment(self, client, admin_headers, other_headers, booked):
        self._reject_id(client, admin_headers, booked["id"])
        resp = client.post(f"/api/client/appointments/{booked['id']}/reupload-documents", headers=other_headers)
        assert resp.status_code == 404


# =============================================================================
# ADMIN STATUS CHANGES / CAGE LIFECYCLE
# =============================================================================


class TestStatusLifecycle:

    def _patch(self, client, headers, appointment_id, **body):
        return client.patch(f"/api/admin/appointments/{appointment_id}", headers=headers, json=body)

    def test_in_progress_requires_verified_receipt(self, client, admin_headers, booked):
        resp = self._patch(client, admin_headers, booked["id"], status="in_progress")
        assert resp.status_code == 400
        assert resp.json["error"] == "Payment must be verified before changing status to in progress or completed"

    def test_invalid_status(self, client, admin_headers, booked):
        resp = self._patch(client, admin_headers, booked["id"], status="teleported")
        assert resp.status_code == 400

    def test_check_in_then_complete_frees_cage(self, client, admin_headers, booked, cage, db_session):
        client.post(
            f"/api/admin/appointments/{booked['id']}/verify-receipt",
            headers=admin_headers,
            json={"approved": True},
        )

        resp = self._patch(client, admin_headers, booked["id"], status="in_progress")
        assert resp.status_code == 200
        db_session.expire_all()
        occupied = db_session.get(Cage, cage.id)
        assert occupied.status == "occupied"
        assert occupied.current_appointment_id == booked["id"]
        reservation = db_session.query(CageReservation).filter_by(appointment_id=booked["id"]).one()
        assert reservation.status == "checked_in"

        resp = self._patch(client, admin_headers, booked["id"], status="completed", notes="Healthy stay")
        assert resp.status_code == 200
        db_session.expire_all()
        freed = db_session.get(Cage, cage.id)
        assert freed.status == "available"
        assert freed.current_appointment_id is None
        assert freed.current_pet_id is None
        reservation = db_session.query(CageReservation).filter_by(appointment_id=booked["id"]).one()
        assert reservation.status == "checked_out"

    def test_cancel_releases_reservation_and_transaction(self, client, admin_headers, booked, db_session):
        resp = self._patch(client, admin_headers, booked["id"], status="cancelled", notes="Owner request")
        assert resp.status_code == 200

        db_session.expire_all()
        reservation = db_session.query(CageReservation).filter_by(appointment_id=booked["id"]).one()
        assert reservation.status == "cancelled"
        txn = db_session.query(Transaction).filter_by(appointment_id=booked["id"]).one()
        assert txn.status == "cancelled"

    def test_employee_cannot_delete(self, client, employee_headers, booked):
        resp = client.delete(f"/api/admin/appointments/{booked['id']}", headers=employee_headers)
        assert resp.status_code == 403

    def test_admin_delete_keeps_transaction_history(self, client, admin_headers, booked, db_session):
        resp = client.delete(f"/api/admin/appointments/{booked['id']}", headers=admin_headers)
        assert resp.status_code == 200

        db_session.expire_all()
        assert db_session.get(Appointment, booked["id"]) is None
        txn = db_session.query(Transaction).one()
        assert txn.status == "cancelled"
        assert txn.appointment_id is None

    def test_medical_record_for_each_pet(self, client, employee_headers, employee_user, booked, db_session):
        resp = client.post(
            f"/api/admin/appointments/{booked['id']}/medical-record",
            headers=employee_headers,
            json={"diagnosis": "Mild otitis", "treatment": "Ear drops"},
        )
        assert resp.status_code == 201
        assert len(resp.json["records"]) == 1
        record = db_session.query(MedicalRecord).one()
        assert record.veterinarian_id == employee_user.id
        assert record.diagnosis == "Mild otitis"

    def test_medical_record_requires_diagnosis(self, client, admin_headers, booked):
        resp = client.post(f"/api/admin/appointments/{booked['id']}/medical-record", headers=admin_headers, json={})
        assert resp.status_code == 400

    def test_medical_record_rejects_non_numeric_pet(self, client, admin_headers, booked, db_session):
        resp = client.post(
            f"/api/admin/appointments/{booked['id']}/medical-record",
            headers=admin_headers,
            json={"diagnosis": "Mild otitis", "pet_id": "mochi"},
        )
        assert resp.status_code == 400
        assert resp.json["error"] == "pet_id must be an integer"
        assert db_session.query(MedicalRecord).count() == 0


# =============================================================================
# CLIENT CANCELLATION
# =============================================================================


class TestClientCancellation:

    def test_cancel_future_appointment(self, client, client_headers, booked, db_session):
        resp = client.post(f"/api/client/appointments/{booked['id']}/cancel", headers=client_headers)
        assert resp.status_code == 200
        assert resp.json["appointment"]["status"] == "cancelled"

        db_session.expire_all()
        reservation = db_session.query(CageReservation).filter_by(appointment_id=booked["id"]).one()
        assert reservation.status == "cancelled"

    def test_cancel_within_24_hours_refused(self, client, client_headers, pet, grooming_service):
        created = client.post("/api/client/appointments", headers=client_headers, json={
            "pet_ids": [pet.id],
            "service_id": grooming_service.id,
            "appointment_date": date.today().isoformat(),
            "payment_method": "cash",
        })
        resp = client.post(
            f"/api/client/appointments/{created.json['appointment']['id']}/cancel",
            headers=client_headers,
        )
        assert resp.status_code == 400
        assert resp.json["error"] == "Appointments can only be cancelled at least 24 hours in advance"

    def test_cancel_paid_appointment_refused(self, client, admin_headers, client_headers, booked):
        client.post(
            f"/api/admin/appointments/{booked['id']}/verify-receipt",
            headers=admin_headers,
            json={"approved": True},
        )
        resp = client.post(f"/api/client/appointments/{booked['id']}/cancel", headers=client_headers)
        assert resp.status_code == 400
        assert resp.json["error"] == "Only pending appointments can be cancelled"
