# Overview: Flask API routes for the transaction ledger; lists and exports payment history.

from flask import Blueprint, request, current_app, g, Response

from ..services import transaction_service
from ..services import user_service
from ..validation import NotFoundError
from ..decorators import require_auth, require_role
from ..models.auth import STAFF_ROLES
from pawpal.time_utils import today


transactions_bp = Blueprint("transactions", __name__)


@transactions_bp.get("/api/client/transactions")
@require_auth
def list_my_transactions_route():
    """
    Query params:
    - status: pending | completed | cancelled | refunded ("all" for every status)
    - type: appointment | order | product_purchase
    """
    try:
        result = transaction_service.list_transactions(
            g.current_user.id,
            status=request.args.get("status"),
            transaction_type=request.args.get("type"),
        )
    except Exception:
        current_app.logger.exception("Failed to fetch transactions")
        return {"error": "Internal server error"}, 500
    return result


@transactions_bp.get("/api/client/transactions/export")
@require_auth
def export_my_transactions_route():
    """Same filters as the list, rendered as a CSV download."""
    try:
        body = transaction_service.export_csv(
            g.current_user.id,
            status=request.args.get("status"),
            transaction_type=request.args.get("type"),
        )
    except Exception:
        current_app.logger.exception("Failed to export transactions")
        return {"error": "Internal server error"}, 500

    filename = f"transactions_{today().isoformat()}.csv"
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@transactions_bp.get("/api/admin/users/<int:user_id>/transactions")
@require_auth
@require_role(*STAFF_ROLES)
def user_transactions_route(user_id: int):
    try:
        user_service.get_user(user_id)
        result = transaction_service.list_transactions(
            user_id,
            status=request.args.get("status"),
            transaction_type=request.args.get("type"),
        )
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to fetch transactions for user %s", user_id)
        return {"error": "Internal server error"}, 500
    return result
