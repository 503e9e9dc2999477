# Overview: Service-layer operations for shop products; encapsulates business logic and database work.

"""
Product Service

Deletion is two-step: DELETE moves a product to inactive, and only an
inactive product can then be removed permanently. Rows in status
`deleted` (legacy soft deletes) never appear in listings and do not block
SKU reuse.
"""

from __future__ import annotations

from ..extensions import db
from ..models import OrderItem, Product
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_product,
    validate_payload,
)
from . import upload_service
from flask import current_app
from pawpal.time_utils import today


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "description", "category", "price", "stock_quantity", "low_stock_threshold",
        "sku", "brand", "weight_kg", "status", "photo_url",
        "is_on_sale", "discount_type", "discount_value", "discount_start_date", "discount_end_date",
    },
    required_on_create={"name", "category", "price", "stock_quantity", "low_stock_threshold"},
    ignore_unknown=True,
)

STATUS_ACTIVE = "active"
STATUS_INACTIVE = "inactive"
STATUS_DELETED = "deleted"


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None or product.status == STATUS_DELETED:
        raise NotFoundError("Product not found")
    return product


def list_for_admin(*, status: str | None = None, category: str | None = None, search: str | None = None) -> list[dict]:
    query = db.session.query(Product).filter(Product.status != STATUS_DELETED)
    if status and status != "all":
        query = query.filter(Product.status == status)
    if category and category != "all":
        query = query.filter(Product.category == category)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Product.name.ilike(like),
            Product.sku.ilike(like),
            Product.brand.ilike(like),
        ))
    products = query.order_by(Product.created_at.desc(), Product.id.desc()).all()
    return [p.to_dict() for p in products]


def list_for_client(*, category: str | None = None, on_sale: bool = False) -> list[dict]:
    """Active products with their effective sale price."""
    query = db.session.query(Product).filter(Product.status == STATUS_ACTIVE)
    if category:
        query = query.filter(Product.category == category)
    if on_sale:
        now = today()
        query = query.filter(
            Product.is_on_sale.is_(True),
            db.or_(Product.discount_start_date.is_(None), Product.discount_start_date <= now),
            db.or_(Product.discount_end_date.is_(None), Product.discount_end_date >= now),
        )
    products = query.order_by(Product.created_at.desc(), Product.id.desc()).all()

    results = []
    for product in products:
        data = product.to_dict()
        data["discount_amount"] = round(float(product.price) - product.sale_price(), 2)
        results.append(data)
    return results


def _sku_taken(sku: str, *, exclude_id: int | None = None) -> bool:
    query = db.session.query(Product.id).filter(Product.sku == sku, Product.status != STATUS_DELETED)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    return query.first() is not None


def _check_status(patch: dict) -> None:
    if "status" in patch and patch["status"] not in (STATUS_ACTIVE, STATUS_INACTIVE):
        raise ValidationError("Invalid status. Must be active or inactive")


def create_product(payload: dict) -> Product:
    payload = dict(payload or {})
    missing = [f for f in PRODUCT_POLICY.required_on_create if payload.get(f) in (None, "")]
    if missing:
        raise ValidationError("Missing required fields")

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)
    _check_status(patch)

    if patch.get("sku") and _sku_taken(patch["sku"]):
        raise ValidationError("SKU already exists")

    if patch.get("status") is None:
        patch["status"] = STATUS_ACTIVE
    if patch.get("is_on_sale") is None:
        patch["is_on_sale"] = False

    product = Product(**patch)
    db.session.add(product)
    db.session.commit()
    return product


def update_product(product_id: int, payload: dict) -> Product:
    """
    Partial update. Discount rules are checked against the merged result,
    so changing only the discount value still honours the stored type.
    """
    product = get_product(product_id)
    payload = dict(payload or {})
    for field in ("name", "category"):
        if field in payload and payload[field] in (None, ""):
            raise ValidationError("Missing required fields")

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    for field in ("price", "stock_quantity", "low_stock_threshold", "is_on_sale"):
        if field in patch and patch[field] is None:
            raise ValidationError("Missing required fields")

    merged = {
        "is_on_sale": product.is_on_sale,
        "discount_type": product.discount_type,
        "discount_value": product.discount_value,
        **patch,
    }
    enforce_rules_product(merged)
    _check_status(patch)

    new_sku = patch.get("sku")
    if new_sku and new_sku != product.sku and _sku_taken(new_sku, exclude_id=product.id):
        raise ValidationError("SKU already exists")

    for key, value in patch.items():
        setattr(product, key, value)
    db.session.commit()
    return product


def deactivate_product(product_id: int) -> Product:
    product = get_product(product_id)
    if product.status == STATUS_INACTIVE:
        raise ValidationError("Product is already inactive")
    product.status = STATUS_INACTIVE
    db.session.commit()
    return product


def delete_permanently(product_id: int) -> None:
    """
    Hard delete of an inactive product. Past order lines keep their price
    and lose the product reference.
    """
    product = get_product(product_id)
    if product.status != STATUS_INACTIVE:
        raise ValidationError("Product must be moved to inactive status before permanent deletion")

    photo_url = product.photo_url
    db.session.query(OrderItem).filter(OrderItem.product_id == product.id).update(
        {OrderItem.product_id: None}, synchronize_session=False
    )
    db.session.delete(product)
    db.session.commit()

    if photo_url and not upload_service.delete_upload(photo_url):
        current_app.logger.info("Product photo %s was not removed", photo_url)


def store_photo(file, *, product_id: int | None = None) -> str:
    """
    Save a product photo. With a product id the photo replaces the
    product's current one; without it only the URL is returned.
    """
    product = get_product(product_id) if product_id else None
    url = upload_service.save_image(
        file, subdir=upload_service.PRODUCTS, prefix="product", owner_id=product_id or 0
    )
    if product is not None:
        old_url = product.photo_url
        product.photo_url = url
        db.session.commit()
        if old_url and old_url != url:
            upload_service.delete_upload(old_url)
    return url
