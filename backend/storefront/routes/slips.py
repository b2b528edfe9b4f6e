# Overview: Flask API routes for customers: slip upload, purchase history, shipping address.

"""
Customer Payment Slip Routes

WHY: Customers pay by bank transfer and upload the slip as proof. Admins
review it later (see admin_slips.py).

SECURITY:
- Every route requires a bearer token; the slip owner is always the
  token's user, never a request field.
- Uploaded files are served read-only under /uploads/slips/<name>.
"""

from flask import Blueprint, request, jsonify, g, current_app, send_from_directory, abort

from ..decorators import require_auth
from ..errors import SlipError
from ..providers import public_url, slip_repository, slip_storage
from ..services import slip_service


slips_bp = Blueprint("slips", __name__)


# =============================================================================
# SLIP UPLOAD
# =============================================================================

@slips_bp.post("/api/payments/slip")
@require_auth
def upload_slip_route():
    """
    Submit a payment slip for a cart.

    Request (multipart/form-data):
    - cart_id: Cart being paid for
    - amount: Transferred amount
    - slip (or file): JPG/PNG/WEBP/HEIC/PDF, at most 10MB
    - shipping_address: Optional, defaults to the cart's saved address

    Returns:
        201: {"ok": true, "slip_id", "order_id", "slip_path", "shipping_address"}
        400: Invalid input
        415: Not a multipart request
        500: Storage or database failure (nothing was recorded)
    """
    if request.mimetype != "multipart/form-data":
        return jsonify({"ok": False, "error": "Expected multipart/form-data"}), 415

    upload = request.files.get("slip") or request.files.get("file")

    try:
        receipt = slip_service.submit_slip(
            slip_repository(),
            slip_storage(),
            user_id=g.current_user.user_id,
            cart_id=request.form.get("cart_id"),
            amount=request.form.get("amount"),
            upload=upload,
            shipping_address=request.form.get("shipping_address"),
        )
    except SlipError as e:
        if e.status_code >= 500:
            current_app.logger.warning("Slip upload failed: %s", e.message)
            return jsonify({"ok": False, "error": "Slip upload failed, please try again"}), e.status_code
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to upload slip")
        return jsonify({"ok": False, "error": "Slip upload failed, please try again"}), 500

    return jsonify({"ok": True, **receipt.to_dict()}), 201


# =============================================================================
# PURCHASE HISTORY
# =============================================================================

@slips_bp.get("/api/user/history")
@require_auth
def user_history_route():
    """The caller's slips, newest first, with resolved line items."""
    try:
        slips = slip_service.list_user_slips(slip_repository(), g.current_user.user_id, url_builder=public_url)
    except SlipError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load purchase history")
        return jsonify({"ok": False, "error": "Internal server error"}), 500

    return jsonify({"ok": True, "slips": slips}), 200


# =============================================================================
# SHIPPING ADDRESS
# =============================================================================

@slips_bp.post("/api/user/address")
@require_auth
def save_address_route():
    """
    Save the shipping address for a cart.

    Request body:
    {
        "cart_id": 12,
        "address": "221B Baker Street"
    }

    PENDING slips of the caller for that cart receive the new address too.
    """
    data = request.get_json(silent=True) or {}

    try:
        result = slip_service.save_cart_address(
            slip_repository(),
            g.current_user.user_id,
            data.get("cart_id"),
            data.get("address"),
        )
    except SlipError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to save cart address")
        return jsonify({"ok": False, "error": "Internal server error"}), 500

    return jsonify({"ok": True, **result}), 200


# =============================================================================
# STORED FILES
# =============================================================================

@slips_bp.get("/uploads/slips/<path:name>")
def slip_file_route(name: str):
    path = slip_storage().resolve(name)
    if path is None:
        abort(404)
    return send_from_directory(current_app.config["SLIP_UPLOAD_DIR"], name)
