# Overview: Flask API routes for admins reviewing payment slips.

"""
Admin Payment Slip Routes

WHY: Approving a slip is what takes stock off the shelf. These routes are
thin adapters; the status machine and the deduction engine live in
services/slip_status_service.py and services/stock_deduction_service.py.

SECURITY:
- Admin role required on every route
- Approval deducts stock at most once per slip, however often or
  concurrently it is requested
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_admin
from ..errors import SlipError
from ..providers import public_url, slip_repository, slip_storage
from ..services import slip_service, slip_status_service
from ..validation import parse_status_filter


admin_slips_bp = Blueprint("admin_slips", __name__, url_prefix="/api/admin/slips")


def _error_response(e: SlipError):
    return jsonify(e.to_dict()), e.status_code


# =============================================================================
# LISTING
# =============================================================================

@admin_slips_bp.get("")
@require_auth
@require_admin
def list_slips_route():
    """
    List slips, newest first.

    Query params:
    - status: PENDING / APPROVED / REJECTED (anything else lists all)

    Each slip carries products resolved from its cart, else its order, else
    its snapshot, plus products_source naming which one was used.
    """
    status = parse_status_filter(request.args.get("status"))

    try:
        slips = slip_service.list_slips(slip_repository(), status=status, url_builder=public_url)
    except SlipError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list slips")
        return jsonify({"ok": False, "error": "Internal server error"}), 500

    return jsonify({"ok": True, "slips": slips}), 200


# =============================================================================
# STATUS CHANGES
# =============================================================================

@admin_slips_bp.put("/<int:slip_id>/status")
@require_auth
@require_admin
def set_status_route(slip_id: int):
    """
    Set a slip's status.

    Request body:
    {
        "status": "APPROVED"  (PENDING / APPROVED / REJECTED)
    }

    Returns:
        200: Transition applied (deduction summary included on approval)
        400: Invalid status
        404: Slip not found
    """
    data = request.get_json(silent=True) or {}

    try:
        change = slip_status_service.set_slip_status(slip_repository(), slip_id, data.get("status"))
    except SlipError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update slip %s", slip_id)
        return jsonify({"ok": False, "error": "Internal server error"}), 500

    return jsonify({"ok": True, **change.to_dict()}), 200


@admin_slips_bp.patch("/<int:slip_id>")
@require_auth
@require_admin
def slip_action_route(slip_id: int):
    """
    Approve or reject a slip.

    Request body:
    {
        "action": "approve"  (approve / reject)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        change = slip_status_service.apply_slip_action(slip_repository(), slip_id, data.get("action"))
    except SlipError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to apply action to slip %s", slip_id)
        return jsonify({"ok": False, "error": "Internal server error"}), 500

    return jsonify({"ok": True, **change.to_dict()}), 200


# =============================================================================
# DELETION
# =============================================================================

@admin_slips_bp.delete("/<int:slip_id>")
@require_auth
@require_admin
def delete_slip_route(slip_id: int):
    """
    Delete a slip.

    Query params:
    - mode: hard (row + file) or soft (tombstone); defaults to SLIP_DELETE_MODE

    Stock is never restored by deletion.
    """
    try:
        result = slip_service.delete_slip(slip_repository(), slip_storage(), slip_id, request.args.get("mode"))
    except SlipError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete slip %s", slip_id)
        return jsonify({"ok": False, "error": "Internal server error"}), 500

    return jsonify({"ok": True, **result}), 200
