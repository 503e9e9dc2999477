# Overview: Service-layer operations for shop orders; encapsulates business logic and database work.

"""
Order Service

Order placement, client cancellation and the admin order lifecycle.

Placing an order is one transaction: the order, its items, the stock
decrements and the pending `product_purchase` transaction commit together.
Item prices are taken from the product (sale price when a discount is
active), never from the request body.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Order, OrderItem, Product, User
from ..models.appointments import PAYMENT_CASH
from ..models.orders import (
    ORDER_CANCELLED,
    ORDER_PENDING,
    ORDER_STATUSES,
)
from ..models.orders import TXN_CANCELLED, TXN_PENDING
from ..validation import MAX_AMOUNT, NotFoundError, ValidationError
from . import notification_service, transaction_service
from .concurrency import lock_for_update


STATUS_MESSAGES = {
    "confirmed": ("Order Confirmed", "success",
                  "Your order {number} has been confirmed and is being prepared for delivery."),
    "processing": ("Order Processing", "info",
                   "Your order {number} is now being processed.{note}"),
    "shipped": ("Order Shipped", "success",
                "Great news! Your order {number} has been shipped and is on its way to you.{tracking}"),
    "delivered": ("Order Delivered", "success",
                  "Your order {number} has been delivered! We hope you enjoy your purchase."),
    "cancelled": ("Order Cancelled", "error",
                  "Your order {number} has been cancelled.{reason}"),
    "refunded": ("Order Refunded", "info",
                 "Your order {number} has been refunded.{note}"),
}


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    return order


def get_owned_order(user: User, order_id: int) -> Order:
    order = db.session.query(Order).filter_by(id=order_id, user_id=user.id).first()
    if order is None:
        raise NotFoundError("Order not found")
    return order


def _with_client(order: Order, *, include_items: bool = False) -> dict:
    data = order.to_dict(include_items=include_items)
    user = order.user
    data["client_name"] = user.full_name if user else None
    data["user_email"] = user.email if user else None
    data["client_phone"] = user.phone if user else None
    data["client_address"] = user.address if user else None
    return data


# ---------------------------------------------------------------------------
# Client operations
# ---------------------------------------------------------------------------

def list_for_client(user: User) -> list[dict]:
    orders = (
        db.session.query(Order)
        .filter(Order.user_id == user.id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )
    return [o.to_dict() for o in orders]


def _parse_items(raw) -> list[tuple[int, int]]:
    """Returns (product_id, quantity) pairs, one per product, in first-seen order."""
    if not isinstance(raw, list) or not raw:
        raise ValidationError("Order items are required")
    quantities: dict[int, int] = {}
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValidationError("Order items are required")
        try:
            product_id = int(entry.get("product_id"))
            quantity = int(entry.get("quantity", 1))
        except (TypeError, ValueError):
            raise ValidationError("Each item needs a product_id and a quantity")
        if quantity <= 0:
            raise ValidationError("Quantity must be at least 1")
        quantities[product_id] = quantities.get(product_id, 0) + quantity
    return list(quantities.items())


def _parse_fee(value) -> float:
    if value in (None, ""):
        return 0.0
    try:
        fee = float(value)
    except (TypeError, ValueError):
        raise ValidationError("Shipping fee must be a number")
    if fee < 0 or fee > MAX_AMOUNT:
        raise ValidationError("Shipping fee must be non-negative")
    return fee


def place_order(user: User, data: dict) -> Order:
    """
    Create an order for the current client.

    Customer details default to the profile. Non-cash orders need a
    receipt. Stock is checked for every item before anything is written.

    Raises:
        ValidationError: missing receipt or items, unknown product,
            insufficient stock
    """
    data = data or {}
    payment_method = (data.get("paymentMethod") or data.get("payment_method") or "").strip().lower()
    receipt_url = data.get("receiptUrl") or data.get("receipt_url")
    if not payment_method:
        raise ValidationError("Payment method is required")
    if payment_method != PAYMENT_CASH and not receipt_url:
        raise ValidationError("Payment receipt is required")

    requested = _parse_items(data.get("items"))

    lines = []
    for product_id, quantity in requested:
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None or product.status == "deleted":
            raise ValidationError(f"Product with ID {product_id} not found")
        if product.stock_quantity < quantity:
            raise ValidationError(
                f"Insufficient stock for {product.name}. Available: {product.stock_quantity}"
            )
        lines.append((product, quantity))

    subtotal = round(sum(p.sale_price() * q for p, q in lines), 2)
    shipping_fee = _parse_fee(data.get("shippingFee", data.get("shipping_fee")))

    order = Order(
        user_id=user.id,
        customer_name=data.get("customerName") or user.full_name,
        customer_email=data.get("customerEmail") or user.email,
        customer_phone=data.get("customerPhone") or user.phone,
        shipping_address=data.get("shippingAddress") or user.address,
        payment_method=payment_method,
        notes=(data.get("notes") or "").strip() or None,
        receipt_url=receipt_url or None,
        subtotal=subtotal,
        shipping_fee=shipping_fee,
        total_amount=round(subtotal + shipping_fee, 2),
        status=ORDER_PENDING,
    )
    db.session.add(order)

    for product, quantity in lines:
        order.items.append(OrderItem(product=product, quantity=quantity, price=product.sale_price()))
        product.stock_quantity -= quantity

    transaction_service.open_for_order(order, len(lines))
    db.session.flush()

    notification_service.notify_staff(
        title="New Order",
        message=f"{user.full_name} placed order {order.order_number}.",
        notification_type="order",
        related_type="order",
        related_id=order.id,
    )
    db.session.commit()
    return order


def cancel_for_client(user: User, order_id: int) -> Order:
    """Only pending orders; stock is restored and the transaction cancelled."""
    order = get_owned_order(user, order_id)
    if (order.status or "").lower() != ORDER_PENDING:
        raise ValidationError("Only pending orders can be cancelled")
    _cancel(order)
    db.session.commit()
    return order


def _cancel(order: Order) -> None:
    order.status = ORDER_CANCELLED
    for item in order.items:
        if item.product is not None:
            item.product.stock_quantity += item.quantity
    transaction_service.set_status(
        transaction_service.for_order(order.id), TXN_CANCELLED, only_from=(TXN_PENDING,)
    )


def attach_receipt(user: User, order_id: int, receipt_url: str) -> Order:
    """A new receipt resets verification so staff review it again."""
    order = get_owned_order(user, order_id)
    if order.status == ORDER_CANCELLED:
        raise ValidationError("Cannot upload a receipt for a cancelled order")
    order.receipt_url = receipt_url
    order.receipt_verified = False
    order.receipt_verified_at = None
    order.receipt_verified_by = None
    notification_service.notify_staff(
        title="Receipt Uploaded",
        message=f"A payment receipt was uploaded for order {order.order_number}.",
        notification_type="payment",
        related_type="order",
        related_id=order.id,
    )
    db.session.commit()
    return order


# ---------------------------------------------------------------------------
# Admin operations
# ---------------------------------------------------------------------------

def list_for_admin(*, status: str | None = None, search: str | None = None) -> list[dict]:
    query = db.session.query(Order).join(User, Order.user_id == User.id)
    if status and status != "all":
        query = query.filter(Order.status == status)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Order.customer_name.ilike(like),
            Order.customer_email.ilike(like),
            User.first_name.ilike(like),
            User.last_name.ilike(like),
        ))
    orders = query.order_by(Order.created_at.desc(), Order.id.desc()).all()
    return [_with_client(o) for o in orders]


def details(order_id: int) -> dict:
    return _with_client(get_order(order_id), include_items=True)


def update_status(order_id: int, data: dict) -> Order:
    """
    Admin status change. A change notifies the owner; cancelling restores
    stock and is final; delivering a cash order completes its transaction.
    """
    data = data or {}
    order = get_order(order_id)
    new_status = data.get("status")
    if new_status not in ORDER_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(ORDER_STATUSES)}")

    notes = data.get("notes")
    if notes is not None:
        order.notes = notes.strip() or None
    note_text = (notes or "").strip()

    old_status = order.status
    if old_status == ORDER_CANCELLED and new_status != ORDER_CANCELLED:
        raise ValidationError("Cancelled orders cannot be reopened")
    if new_status != old_status:
        if new_status == ORDER_CANCELLED:
            _cancel(order)
        else:
            order.status = new_status
            if new_status == "delivered":
                transaction_service.complete_for_order(order.id)

        title, kind, template = STATUS_MESSAGES.get(
            new_status,
            ("Order Updated", "info", "Your order {number} status has been updated to {status}."),
        )
        notification_service.notify(
            order.user,
            title=title,
            message=template.format(
                number=order.order_number,
                status=new_status,
                note=f" Note: {note_text}" if note_text else "",
                tracking=f" Tracking info: {note_text}" if note_text else "",
                reason=f" Reason: {note_text}" if note_text else "",
            ),
            notification_type=kind,
            related_type="order",
            related_id=order.id,
            action_path=f"/client/orders/{order.id}",
            action_text="View Order",
        )

    db.session.commit()
    return order


def delete_order(order_id: int) -> None:
    """Admin delete. The owner is told; linked transactions are detached."""
    order = get_order(order_id)
    transaction_service.set_status(
        transaction_service.for_order(order.id), TXN_CANCELLED, only_from=(TXN_PENDING,)
    )
    for txn in transaction_service.for_order(order.id):
        txn.order = None
        txn.reference_id = order.id

    notification_service.notify(
        order.user,
        title="Order Deleted",
        message=f"Your order {order.order_number} has been deleted by the administrator.",
        notification_type="order_deleted",
        related_type="order",
        related_id=order.id,
    )
    db.session.delete(order)
    db.session.commit()
