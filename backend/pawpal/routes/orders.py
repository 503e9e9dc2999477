# Overview: Flask API routes for orders operations; parses input and returns JSON responses.

"""
Shop order routes.

Client routes (/api/client/orders) only see the caller's orders. Admin
routes (/api/admin/orders) require admin or employee.
"""

from flask import Blueprint, request, current_app, g

from ..extensions import db
from ..services import order_service
from ..services import upload_service
from ..services import verification_service
from ..validation import ValidationError, NotFoundError
from ..decorators import require_auth, require_role
from ..models.auth import STAFF_ROLES


orders_bp = Blueprint("orders", __name__)


# =============================================================================
# CLIENT
# =============================================================================

@orders_bp.get("/api/client/orders")
@require_auth
def list_my_orders_route():
    try:
        orders = order_service.list_for_client(g.current_user)
    except Exception:
        current_app.logger.exception("Failed to fetch orders")
        return {"error": "Internal server error"}, 500
    return {"orders": orders}


@orders_bp.get("/api/client/orders/<int:order_id>")
@require_auth
def get_my_order_route(order_id: int):
    try:
        order = order_service.get_owned_order(g.current_user, order_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return {"order": order.to_dict(include_items=True)}


@orders_bp.post("/api/client/orders")
@require_auth
def place_order_route():
    """
    Place an order.

    Body: items [{product_id, quantity}], paymentMethod, receiptUrl (unless
    cash), shippingFee, customerName, customerEmail, customerPhone,
    shippingAddress, notes. Prices come from the catalog.
    """
    data = request.get_json(silent=True) or {}
    try:
        order = order_service.place_order(g.current_user, data)
    except ValidationError as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to place order")
        return {"error": "Internal server error"}, 500

    return {"message": "Order placed successfully", "order": order.to_dict(include_items=True)}, 201


@orders_bp.post("/api/client/orders/<int:order_id>/cancel")
@require_auth
def cancel_my_order_route(order_id: int):
    try:
        order = order_service.cancel_for_client(g.current_user, order_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to cancel order %s", order_id)
        return {"error": "Internal server error"}, 500

    return {"message": "Order cancelled successfully", "order": order.to_dict()}


@orders_bp.post("/api/client/orders/upload-receipt")
@require_auth
def upload_order_receipt_route():
    """
    Store an order receipt.

    Form fields:
    - file: the image
    - orderId (optional): attach to that order and reset its verification;
      without it the URL is returned for use when placing the order
    """
    order_id = request.form.get("orderId", type=int)
    url = None
    try:
        if order_id:
            order_service.get_owned_order(g.current_user, order_id)
        url = upload_service.save_image(
            request.files.get("file"),
            subdir=upload_service.ORDER_RECEIPTS,
            prefix="order_receipt",
            owner_id=order_id or g.current_user.id,
        )
        order = order_service.attach_receipt(g.current_user, order_id, url) if order_id else None
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        db.session.rollback()
        upload_service.delete_upload(url)
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        upload_service.delete_upload(url)
        current_app.logger.exception("Failed to upload order receipt")
        return {"error": "Internal server error"}, 500

    response = {"message": "Receipt uploaded successfully", "url": url}
    if order is not None:
        response["order"] = order.to_dict()
    return response, 201


# =============================================================================
# ADMIN
# =============================================================================

@orders_bp.get("/api/admin/orders")
@require_auth
@require_role(*STAFF_ROLES)
def list_orders_route():
    """
    Query params:
    - status ("all" for every status)
    - search: customer name or email
    """
    try:
        orders = order_service.list_for_admin(
            status=request.args.get("status"),
            search=request.args.get("search"),
        )
    except Exception:
        current_app.logger.exception("Failed to fetch orders")
        return {"error": "Internal server error"}, 500
    return {"orders": orders}


@orders_bp.get("/api/admin/orders/<int:order_id>")
@require_auth
@require_role(*STAFF_ROLES)
def order_details_route(order_id: int):
    try:
        order = order_service.details(order_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return {"order": order}


@orders_bp.patch("/api/admin/orders/<int:order_id>")
@require_auth
@require_role(*STAFF_ROLES)
def update_order_route(order_id: int):
    data = request.get_json(silent=True) or {}
    try:
        order = order_service.update_status(order_id, data)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update order %s", order_id)
        return {"error": "Internal server error"}, 500

    return {"message": "Order updated successfully", "order": order.to_dict(include_items=True)}


@orders_bp.delete("/api/admin/orders/<int:order_id>")
@require_auth
@require_role(*STAFF_ROLES)
def delete_order_route(order_id: int):
    try:
        order_service.delete_order(order_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete order %s", order_id)
        return {"error": "Internal server error"}, 500

    return {"message": "Order deleted successfully"}


@orders_bp.post("/api/admin/orders/<int:order_id>/verify-receipt")
@require_auth
@require_role(*STAFF_ROLES)
def verify_order_receipt_route(order_id: int):
    """
    Body: {"approved": true|false}

    Approval confirms the order and completes its transaction; rejection
    returns it to pending.
    """
    data = request.get_json(silent=True) or {}
    try:
        order, message = verification_service.verify_order_receipt(g.current_user, order_id, data)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to verify receipt for order %s", order_id)
        return {"error": "Internal server error"}, 500

    return {"message": message, "order": order.to_dict(include_items=True)}
