# Overview: Service-layer operations for payment receipt verification on appointments and orders.

"""
Verification Service

Receipt review is a multi-entity transition:

    appointment:  pending payment -> paid             (approved)
                  any             -> pending payment  (rejected)
    order:        pending         -> confirmed        (approved)
                  any             -> pending          (rejected)

On approval the linked transaction is completed. Rejection leaves the
transaction as it is. The status change, the transaction update, the
notification and the queued email are committed together; a failure at
any step rolls all of them back.

WHY: email is only queued here. Delivery happens after commit so a slow or
broken SMTP server never holds the transaction open or fails the review.
"""

from ..extensions import db
from ..models import Appointment, Order, User
from ..models.appointments import STATUS_PAID, STATUS_PENDING_PAYMENT
from ..models.orders import ORDER_CONFIRMED, ORDER_PENDING
from ..validation import NotFoundError, ValidationError, parse_approved
from . import notification_service, transaction_service
from pawpal.time_utils import utcnow


def verify_appointment_receipt(staff: User, appointment_id: int, data: dict) -> tuple[Appointment, str]:
    """
    Approve or reject the uploaded payment receipt of an appointment.

    Returns (appointment, message).

    Raises:
        NotFoundError: unknown appointment
        ValidationError: no receipt uploaded, or `approved` missing
    """
    approved = parse_approved(data)
    appointment = db.session.get(Appointment, appointment_id)
    if appointment is None:
        raise NotFoundError("Appointment not found")
    if not appointment.receipt_url:
        raise ValidationError("No receipt found for this appointment")

    appointment.status = STATUS_PAID if approved else STATUS_PENDING_PAYMENT
    appointment.receipt_verified = approved
    appointment.receipt_verified_at = utcnow() if approved else None
    appointment.receipt_verified_by = staff.id if approved else None

    if approved:
        transaction_service.complete_for_appointment(appointment.id)
        title = "Payment Verified"
        message = "Your payment has been verified and your appointment is confirmed!"
        kind = "payment_verified"
    else:
        title = "Receipt Rejected"
        message = "Your payment receipt was rejected. Please upload a valid receipt."
        kind = "receipt_rejected"

    notification_service.notify(
        appointment.user,
        title=title,
        message=message,
        notification_type=kind,
        related_type="appointment",
        related_id=appointment.id,
        action_path=f"/client/appointments/{appointment.id}",
        action_text="View Appointment Details",
    )
    db.session.commit()

    summary = (
        "Receipt verified and appointment marked as paid successfully"
        if approved else "Receipt rejected successfully"
    )
    return appointment, summary


def verify_order_receipt(staff: User, order_id: int, data: dict) -> tuple[Order, str]:
    """
    Approve or reject the uploaded payment receipt of an order.

    Same shape as the appointment variant, targeting confirmed / pending.
    """
    approved = parse_approved(data)
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    if not order.receipt_url:
        raise ValidationError("No receipt found for this order")

    order.status = ORDER_CONFIRMED if approved else ORDER_PENDING
    order.receipt_verified = approved
    order.receipt_verified_at = utcnow() if approved else None
    order.receipt_verified_by = staff.id if approved else None

    if approved:
        transaction_service.complete_for_order(order.id)
        title = "Order Confirmed"
        message = (
            f"Your order {order.order_number} has been confirmed! Your payment has been verified "
            "and your order is being prepared for shipment."
        )
        kind = "order_confirmed"
    else:
        title = "Receipt Rejected"
        message = (
            f"Your payment receipt for order {order.order_number} was rejected. "
            "Please upload a valid receipt."
        )
        kind = "receipt_rejected"

    notification_service.notify(
        order.user,
        title=title,
        message=message,
        notification_type=kind,
        related_type="order",
        related_id=order.id,
        action_path=f"/client/orders/{order.id}",
        action_text="View Order Details",
    )
    db.session.commit()

    summary = (
        "Receipt verified and order confirmed successfully"
        if approved else "Receipt rejected successfully"
    )
    return order, summary
