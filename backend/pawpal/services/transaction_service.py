# Overview: Service-layer operations for transactions; encapsulates business logic and database work.

"""
Transaction Service

Transactions mirror the payment state of an appointment or an order.
Helpers here only stage changes; the calling workflow commits.
"""

import csv
import io

from ..extensions import db
from ..models import Appointment, Order, Transaction
from ..models.orders import (
    TXN_APPOINTMENT,
    TXN_ORDER,
    TXN_PRODUCT_PURCHASE,
    TXN_PENDING,
    TXN_COMPLETED,
    TXN_CANCELLED,
)
from pawpal.time_utils import to_utc_z, utcnow


CSV_COLUMNS = ["Date", "Type", "Description", "Amount", "Payment Method", "Status", "Reference"]


def open_for_appointment(appointment: Appointment) -> Transaction:
    txn = Transaction(
        user_id=appointment.user_id,
        transaction_type=TXN_APPOINTMENT,
        appointment=appointment,
        reference_id=None,
        amount=appointment.total_amount or 0,
        payment_method=appointment.payment_method,
        status=TXN_PENDING,
        description=f"Appointment - {appointment.service.name if appointment.service else 'Service'}",
        transaction_date=utcnow(),
    )
    db.session.add(txn)
    return txn


def open_for_order(order: Order, item_count: int) -> Transaction:
    txn = Transaction(
        user_id=order.user_id,
        transaction_type=TXN_PRODUCT_PURCHASE,
        order=order,
        amount=order.total_amount,
        payment_method=order.payment_method,
        status=TXN_PENDING,
        description=f"Order - {item_count} item{'s' if item_count != 1 else ''}",
        transaction_date=utcnow(),
    )
    db.session.add(txn)
    return txn


def for_appointment(appointment_id: int) -> list[Transaction]:
    return db.session.query(Transaction).filter(
        Transaction.appointment_id == appointment_id,
        Transaction.transaction_type == TXN_APPOINTMENT,
    ).all()


def for_order(order_id: int) -> list[Transaction]:
    return db.session.query(Transaction).filter(
        Transaction.order_id == order_id,
        Transaction.transaction_type.in_((TXN_ORDER, TXN_PRODUCT_PURCHASE)),
    ).all()


def set_status(transactions: list[Transaction], status: str, *, only_from: tuple[str, ...] | None = None) -> int:
    changed = 0
    for txn in transactions:
        if only_from is not None and txn.status not in only_from:
            continue
        txn.status = status
        changed += 1
    return changed


def complete_for_appointment(appointment_id: int) -> int:
    return set_status(for_appointment(appointment_id), TXN_COMPLETED)


def cancel_for_appointment(appointment_id: int) -> int:
    return set_status(for_appointment(appointment_id), TXN_CANCELLED, only_from=(TXN_PENDING,))


def complete_for_order(order_id: int) -> int:
    return set_status(for_order(order_id), TXN_COMPLETED)


def _filtered(user_id: int | None, *, status: str | None = None, transaction_type: str | None = None):
    query = db.session.query(Transaction)
    if user_id is not None:
        query = query.filter(Transaction.user_id == user_id)
    if status and status != "all":
        query = query.filter(Transaction.status == status)
    if transaction_type and transaction_type != "all":
        query = query.filter(Transaction.transaction_type == transaction_type)
    return query.order_by(Transaction.transaction_date.desc(), Transaction.id.desc())


def list_transactions(user_id: int | None, *, status: str | None = None, transaction_type: str | None = None) -> dict:
    transactions = _filtered(user_id, status=status, transaction_type=transaction_type).all()
    completed_total = sum(float(t.amount or 0) for t in transactions if t.status == TXN_COMPLETED)
    pending_total = sum(float(t.amount or 0) for t in transactions if t.status == TXN_PENDING)
    return {
        "transactions": [t.to_dict() for t in transactions],
        "count": len(transactions),
        "summary": {
            "total_spent": round(completed_total, 2),
            "pending_amount": round(pending_total, 2),
        },
    }


def _reference_label(txn: Transaction) -> str:
    if txn.order_id:
        return f"ORD-{txn.order_id:04d}"
    if txn.appointment_id:
        return f"APT-{txn.appointment_id:04d}"
    return ""


def export_csv(user_id: int, *, status: str | None = None, transaction_type: str | None = None) -> str:
    """Render the user's (filtered) transactions as CSV text."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_COLUMNS)
    for txn in _filtered(user_id, status=status, transaction_type=transaction_type):
        writer.writerow([
            to_utc_z(txn.transaction_date),
            txn.transaction_type,
            txn.description or "",
            f"{float(txn.amount or 0):.2f}",
            txn.payment_method or "",
            txn.status,
            _reference_label(txn),
        ])
    return buffer.getvalue()
