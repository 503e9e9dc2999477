from __future__ import annotations

from ..extensions import db
from pawpal.time_utils import to_utc_z, to_iso_date, today


class Category(db.Model):
    """Service categories (grooming, boarding, consultation, ...)."""
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    color = db.Column(db.String(16), nullable=False, default="#6b7280")
    icon = db.Column(db.String(50), nullable=False, default="tag")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    @property
    def is_boarding(self) -> bool:
        return "boarding" in (self.name or "").lower()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "color": self.color,
            "icon": self.icon,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Service(db.Model):
    __tablename__ = "services"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price = db.Column(db.Numeric(10, 2, asdecimal=False), nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    category = db.relationship("Category", backref=db.backref("services", lazy=True))

    @property
    def is_boarding(self) -> bool:
        return bool(self.category and self.category.is_boarding)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "category_color": self.category.color if self.category else None,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "duration_minutes": self.duration_minutes,
            "is_active": self.is_active,
            "is_boarding": self.is_boarding,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


PRODUCT_STATUSES = ("active", "inactive", "deleted")


class Product(db.Model):
    """
    Shop products. Deletion is two-step: soft (inactive) then permanent.
    """
    __tablename__ = "products"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(100), nullable=False)
    price = db.Column(db.Numeric(10, 2, asdecimal=False), nullable=False)
    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=10)
    sku = db.Column(db.String(64), nullable=True, index=True)
    brand = db.Column(db.String(100), nullable=True)
    weight_kg = db.Column(db.Numeric(8, 3, asdecimal=False), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="active")
    photo_url = db.Column(db.String(500), nullable=True)

    is_on_sale = db.Column(db.Boolean, nullable=False, default=False)
    discount_type = db.Column(db.String(16), nullable=True)
    discount_value = db.Column(db.Numeric(10, 2, asdecimal=False), nullable=True)
    discount_start_date = db.Column(db.Date, nullable=True)
    discount_end_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def sale_price(self) -> float:
        """Price after an active discount; the list price otherwise."""
        price = float(self.price or 0)
        if not self.is_on_sale or not self.discount_value:
            return price
        now = today()
        if self.discount_start_date and now < self.discount_start_date:
            return price
        if self.discount_end_date and now > self.discount_end_date:
            return price
        if self.discount_type == "percentage":
            return round(price * (1 - float(self.discount_value) / 100), 2)
        if self.discount_type == "fixed":
            return round(max(0.0, price - float(self.discount_value)), 2)
        return price

    @property
    def is_low_stock(self) -> bool:
        return self.stock_quantity <= self.low_stock_threshold

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "price": self.price,
            "sale_price": self.sale_price(),
            "stock_quantity": self.stock_quantity,
            "low_stock_threshold": self.low_stock_threshold,
            "is_low_stock": self.is_low_stock,
            "sku": self.sku,
            "brand": self.brand,
            "weight_kg": self.weight_kg,
            "status": self.status,
            "photo_url": self.photo_url,
            "is_on_sale": self.is_on_sale,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "discount_start_date": to_iso_date(self.discount_start_date),
            "discount_end_date": to_iso_date(self.discount_end_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
