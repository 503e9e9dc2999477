# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product management routes.

SECURITY:
- Admin routes require admin or employee
- The client product list requires any authenticated user

DELETE is a soft delete to inactive; DELETE /permanent removes an
inactive product for good.
"""
from flask import Blueprint, request, current_app

from ..extensions import db
from ..services import product_service
from ..validation import ValidationError, NotFoundError
from ..decorators import require_auth, require_role
from ..models.auth import STAFF_ROLES

products_bp = Blueprint("products", __name__)


@products_bp.get("/api/admin/products")
@require_auth
@require_role(*STAFF_ROLES)
def list_products_route():
    """
    List non-deleted products.

    Query params:
    - status: active | inactive ("all" for both)
    - category
    - search: name, SKU or brand
    """
    try:
        products = product_service.list_for_admin(
            status=request.args.get("status"),
            category=request.args.get("category"),
            search=request.args.get("search"),
        )
    except Exception:
        current_app.logger.exception("Failed to fetch products")
        return {"error": "Internal server error"}, 500
    return {"products": products}


@products_bp.get("/api/admin/products/<int:product_id>")
@require_auth
@require_role(*STAFF_ROLES)
def get_product_route(product_id: int):
    try:
        product = product_service.get_product(product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return {"product": product.to_dict()}


@products_bp.post("/api/admin/products")
@require_auth
@require_role(*STAFF_ROLES)
def create_product_route():
    payload = request.get_json(silent=True) or {}
    try:
        product = product_service.create_product(payload)
    except ValidationError as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500

    return {"message": "Product created successfully", "product": product.to_dict()}, 201


@products_bp.put("/api/admin/products/<int:product_id>")
@require_auth
@require_role(*STAFF_ROLES)
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        product = product_service.update_product(product_id, payload)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update product %s", product_id)
        return {"error": "Internal server error"}, 500

    return {"message": "Product updated successfully", "product": product.to_dict()}


@products_bp.delete("/api/admin/products/<int:product_id>")
@require_auth
@require_role(*STAFF_ROLES)
def deactivate_product_route(product_id: int):
    """Soft delete: the product moves to inactive."""
    try:
        product = product_service.deactivate_product(product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to deactivate product %s", product_id)
        return {"error": "Internal server error"}, 500

    return {"message": "Product moved to inactive", "product": product.to_dict()}


@products_bp.delete("/api/admin/products/<int:product_id>/permanent")
@require_auth
@require_role(*STAFF_ROLES)
def delete_product_permanently_route(product_id: int):
    try:
        product_service.delete_permanently(product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete product %s", product_id)
        return {"error": "Internal server error"}, 500

    return {"message": "Product permanently deleted"}


@products_bp.post("/api/admin/products/upload")
@require_auth
@require_role(*STAFF_ROLES)
def upload_product_photo_route():
    """
    Store a product photo.

    Form fields:
    - file: the image
    - product_id (optional): replace that product's photo
    """
    product_id = request.form.get("product_id", type=int)
    try:
        url = product_service.store_photo(request.files.get("file"), product_id=product_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to upload product photo")
        return {"error": "Internal server error"}, 500

    return {"message": "Photo uploaded successfully", "url": url}, 201


@products_bp.get("/api/client/products")
@require_auth
def client_products_route():
    """
    Active products with the effective sale price.

    Query params:
    - category
    - on_sale: true to list only discounted products
    """
    on_sale = (request.args.get("on_sale") or "").lower() in {"1", "true", "yes"}
    try:
        products = product_service.list_for_client(
            category=request.args.get("category"),
            on_sale=on_sale,
        )
    except Exception:
        current_app.logger.exception("Failed to fetch products")
        return {"error": "Internal server error"}, 500
    return {"products": products}
