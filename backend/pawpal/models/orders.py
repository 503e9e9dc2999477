from __future__ import annotations

from ..extensions import db
from pawpal.time_utils import to_utc_z


ORDER_PENDING = "pending"
ORDER_CONFIRMED = "confirmed"
ORDER_PROCESSING = "processing"
ORDER_SHIPPED = "shipped"
ORDER_DELIVERED = "delivered"
ORDER_CANCELLED = "cancelled"
ORDER_REFUNDED = "refunded"
ORDER_STATUSES = (
    ORDER_PENDING,
    ORDER_CONFIRMED,
    ORDER_PROCESSING,
    ORDER_SHIPPED,
    ORDER_DELIVERED,
    ORDER_CANCELLED,
    ORDER_REFUNDED,
)


def format_order_number(order_id: int) -> str:
    return f"ORD-{order_id:04d}"


class Order(db.Model):
    """Shop order. Receipt verification is independent of appointments."""
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_user_status", "user_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_name = db.Column(db.String(200), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)
    shipping_address = db.Column(db.Text, nullable=True)
    payment_method = db.Column(db.String(32), nullable=False)
    subtotal = db.Column(db.Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    shipping_fee = db.Column(db.Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=ORDER_PENDING)
    notes = db.Column(db.Text, nullable=True)

    receipt_url = db.Column(db.String(500), nullable=True)
    receipt_verified = db.Column(db.Boolean, nullable=False, default=False)
    receipt_verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    receipt_verified_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("orders", lazy=True))
    items = db.relationship("OrderItem", backref="order", lazy="selectin", cascade="all, delete-orphan", order_by="OrderItem.id")

    @property
    def order_number(self) -> str:
        return format_order_number(self.id)

    @property
    def is_cash(self) -> bool:
        return (self.payment_method or "").lower() == "cash"

    def to_dict(self, *, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "user_id": self.user_id,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "shipping_address": self.shipping_address,
            "payment_method": self.payment_method,
            "subtotal": self.subtotal,
            "shipping_fee": self.shipping_fee,
            "total_amount": self.total_amount,
            "status": self.status,
            "notes": self.notes,
            "receipt_url": self.receipt_url,
            "receipt_verified": self.receipt_verified,
            "receipt_verified_at": to_utc_z(self.receipt_verified_at),
            "items_count": len(self.items),
            "items_summary": ", ".join(
                f"{i.quantity}x {i.product.name if i.product else 'Removed product'} (₱{i.price:.2f})"
                for i in self.items
            ),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [i.to_dict() for i in self.items]
        return data


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    # Unit price at time of purchase
    price = db.Column(db.Numeric(10, 2, asdecimal=False), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "photo_url": self.product.photo_url if self.product else None,
            "quantity": self.quantity,
            "price": self.price,
            "line_total": round(self.price * self.quantity, 2),
        }


TXN_APPOINTMENT = "appointment"
TXN_ORDER = "order"
TXN_PRODUCT_PURCHASE = "product_purchase"
TXN_PENDING = "pending"
TXN_COMPLETED = "completed"
TXN_CANCELLED = "cancelled"
TXN_REFUNDED = "refunded"


class Transaction(db.Model):
    """
    Financial ledger row mirroring an appointment's or order's payment.

    Status moves in lockstep with the parent's verification outcome.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_user_date", "user_id", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    transaction_type = db.Column(db.String(32), nullable=False)
    appointment_id = db.Column(db.Integer, db.ForeignKey("appointments.id", ondelete="SET NULL"), nullable=True, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, index=True)
    reference_id = db.Column(db.Integer, nullable=True)
    amount = db.Column(db.Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    payment_method = db.Column(db.String(32), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=TXN_PENDING)
    description = db.Column(db.String(255), nullable=True)
    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User")
    appointment = db.relationship("Appointment")
    order = db.relationship("Order")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "transaction_type": self.transaction_type,
            "appointment_id": self.appointment_id,
            "order_id": self.order_id,
            "reference_id": self.reference_id,
            "amount": self.amount,
            "payment_method": self.payment_method,
            "status": self.status,
            "description": self.description,
            "transaction_date": to_utc_z(self.transaction_date),
        }
