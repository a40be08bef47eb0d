# Overview: Flask API routes for customer points; parses input and returns JSON responses.

from datetime import timedelta

from flask import Blueprint, request, jsonify, g, current_app

from ..models import POINT_HISTORY_TYPES
from ..decorators import require_auth, require_admin, require_admin_or_cron_secret
from ..services import auth_service, point_ledger_service, point_expiration_service
from ..services.point_ledger_service import (
    CustomerNotFoundError,
    InsufficientBalanceError,
    DuplicateKeyError,
    PointLedgerError,
)
from ..validation import ValidationError, clamp_query_int, parse_adjustment_payload, parse_int
from loyalty.time_utils import utcnow, to_utc_z

"""
Time semantics:
- expires_at and timestamps are serialized as ISO-8601 with trailing Z.
- Expiration eligibility is inclusive: expires_at <= now.
"""

points_bp = Blueprint("points", __name__, url_prefix="/api/customer/points")


def _can_view_customer(customer_id: int) -> bool:
    user = g.current_user
    if user.customer_id is not None and user.customer_id == customer_id:
        return True
    return auth_service.is_admin(user.id)


def _customer_id_arg():
    raw = request.args.get("customer_id")
    if raw is None or not raw.strip():
        raise ValidationError("customer_id is required")
    return parse_int(raw, "customer_id")


@points_bp.get("")
@require_auth
def list_point_history_route():
    """
    Paged point history for a customer, newest first.

    Available to: admin, or the customer's own account
    """
    try:
        customer_id = _customer_id_arg()
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    if not _can_view_customer(customer_id):
        return jsonify({"error": "Forbidden"}), 403

    limit = clamp_query_int(request.args.get("limit"), 20, 1, 100)
    offset = clamp_query_int(request.args.get("offset"), 0, 0, 1000)

    history_type = request.args.get("type")
    if history_type and history_type not in POINT_HISTORY_TYPES:
        return jsonify({"error": "Invalid type parameter"}), 400

    try:
        rows, total = point_ledger_service.list_point_history(
            customer_id,
            type=history_type or None,
            limit=limit,
            offset=offset,
        )
    except Exception:
        current_app.logger.exception("Failed to fetch point history")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "data": [row.to_dict() for row in rows],
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "hasMore": offset + limit < total,
        },
    }), 200


@points_bp.get("/balance")
@require_auth
def get_point_balance_route():
    """
    Current balance plus the next lot that expires within the warning window.

    Available to: admin, or the customer's own account
    """
    try:
        customer_id = _customer_id_arg()
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    if not _can_view_customer(customer_id):
        return jsonify({"error": "Forbidden"}), 403

    try:
        balance = point_ledger_service.get_balance(customer_id)
        now = utcnow()
        window = timedelta(days=current_app.config.get("POINT_EXPIRY_WARNING_DAYS", 30))
        expiring = point_ledger_service.get_expiring_points(customer_id, now + window, now=now)
    except CustomerNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to fetch point balance")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "customerId": customer_id,
        "balance": balance,
        "expiringPoints": {
            "amount": expiring.amount,
            "expiresAt": to_utc_z(expiring.expires_at),
        } if expiring else None,
    }), 200


@points_bp.post("/adjust")
@require_auth
@require_admin
def adjust_points_route():
    """
    Manual point adjustment (positive or negative).

    Available to: admin
    """
    try:
        customer_id, amount, reason = parse_adjustment_payload(request.get_json(silent=True))
    except ValidationError as e:
        return jsonify({"error": "Invalid payload", "message": str(e)}), 400

    try:
        entry = point_ledger_service.adjust_points(customer_id, amount, reason)
    except CustomerNotFoundError as e:
        return jsonify({"error": str(e), "details": e.details}), 404
    except InsufficientBalanceError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except DuplicateKeyError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except PointLedgerError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to adjust points")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info(
        "Points adjusted by user_id=%s (customer_id=%s, amount=%s)",
        g.current_user.id,
        customer_id,
        amount,
    )
    return jsonify({"entry": entry.to_dict()}), 200


@points_bp.post("/expire")
@require_admin_or_cron_secret
def expire_points_route():
    """
    Expire every earned lot past its validity window.

    Safe to call repeatedly or concurrently; no body required.
    Available to: admin session, or Bearer CRON_SECRET
    """
    try:
        result = point_expiration_service.run_expiration()
    except Exception:
        current_app.logger.exception("Unexpected error when expiring points")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info("Point expiration triggered by %s", g.trigger_source)
    return jsonify(result.to_dict()), 200
