# Overview: Service-layer aggregates for the admin and client dashboards.

from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..models import Appointment, Order, Pet, Product, Transaction, User
from ..models.appointments import (
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    STATUS_PAID,
    STATUS_PENDING,
    STATUS_PENDING_PAYMENT,
)
from ..models.auth import ROLE_CLIENT
from ..models.orders import ORDER_PENDING, TXN_COMPLETED
from pawpal.time_utils import today


RECENT_LIMIT = 5
UPCOMING_STATUSES = (STATUS_PENDING, STATUS_PENDING_PAYMENT, STATUS_PAID, STATUS_CONFIRMED)


def _month_bounds(day):
    start = datetime(day.year, day.month, 1)
    if day.month == 12:
        end = datetime(day.year + 1, 1, 1)
    else:
        end = datetime(day.year, day.month + 1, 1)
    return start, end


def _count(query) -> int:
    return int(query.scalar() or 0)


def admin_stats() -> dict:
    now = today()
    month_start, month_end = _month_bounds(now)

    revenue = db.session.query(func.coalesce(func.sum(Transaction.amount), 0)).filter(
        Transaction.status == TXN_COMPLETED,
        Transaction.transaction_date >= month_start,
        Transaction.transaction_date < month_end,
    ).scalar()

    return {
        "totalUsers": _count(db.session.query(func.count(User.id)).filter(User.role == ROLE_CLIENT)),
        "totalPets": _count(db.session.query(func.count(Pet.id))),
        "todayAppointments": _count(
            db.session.query(func.count(Appointment.id)).filter(Appointment.appointment_date == now)
        ),
        "pendingAppointments": _count(
            db.session.query(func.count(Appointment.id)).filter(
                Appointment.status.in_((STATUS_PENDING, STATUS_PENDING_PAYMENT))
            )
        ),
        "monthlyRevenue": round(float(revenue or 0), 2),
        "lowStockProducts": _count(
            db.session.query(func.count(Product.id)).filter(
                Product.status == "active",
                Product.stock_quantity <= Product.low_stock_threshold,
            )
        ),
        "pendingOrders": _count(db.session.query(func.count(Order.id)).filter(Order.status == ORDER_PENDING)),
    }


def recent_appointments(*, limit: int = RECENT_LIMIT) -> list[dict]:
    appointments = (
        db.session.query(Appointment)
        .order_by(Appointment.created_at.desc(), Appointment.id.desc())
        .limit(limit)
        .all()
    )
    return [a.to_dict(include_client=True) for a in appointments]


def recent_orders(*, limit: int = RECENT_LIMIT) -> list[dict]:
    orders = (
        db.session.query(Order)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
        .all()
    )
    results = []
    for order in orders:
        data = order.to_dict()
        data["client_name"] = order.user.full_name if order.user else order.customer_name
        results.append(data)
    return results


def client_stats(user: User) -> dict:
    now = today()
    mine = db.session.query(func.count(Appointment.id)).filter(Appointment.user_id == user.id)

    spent = db.session.query(func.coalesce(func.sum(Transaction.amount), 0)).filter(
        Transaction.user_id == user.id,
        Transaction.status == TXN_COMPLETED,
    ).scalar()

    return {
        "totalPets": _count(db.session.query(func.count(Pet.id)).filter(Pet.user_id == user.id)),
        "totalAppointments": _count(mine),
        "upcomingAppointments": _count(mine.filter(
            Appointment.status.in_(UPCOMING_STATUSES),
            Appointment.appointment_date >= now,
        )),
        "completedAppointments": _count(mine.filter(Appointment.status == STATUS_COMPLETED)),
        "pendingAppointments": _count(mine.filter(
            Appointment.status.in_((STATUS_PENDING, STATUS_PENDING_PAYMENT))
        )),
        "totalOrders": _count(db.session.query(func.count(Order.id)).filter(Order.user_id == user.id)),
        "totalSpent": round(float(spent or 0), 2),
    }


def client_recent_appointments(user: User, *, limit: int = RECENT_LIMIT) -> list[dict]:
    appointments = (
        db.session.query(Appointment)
        .filter(Appointment.user_id == user.id)
        .order_by(Appointment.appointment_date.desc(), Appointment.id.desc())
        .limit(limit)
        .all()
    )
    return [a.to_dict() for a in appointments]
