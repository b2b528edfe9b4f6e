# Overview: Slip submission, listing, deletion and shipping address business logic.

"""
Payment Slip Service

WHY: A customer pays by bank transfer and uploads the transfer slip. The
upload must leave a durable, reviewable record (slip row + snapshot +
mirrored order) or nothing at all.

SUBMISSION:
1. Validate input, store the file.
2. One transaction: insert slip, capture snapshot (savepointed, never fatal),
   reconcile the order, commit.
3. Any failure in 2 rolls back and deletes the stored file.

LISTING:
Line items for display come from the same cart -> order -> snapshot chain
the deduction engine uses, so what an admin sees is what gets deducted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from ..errors import DatabaseError, NotFoundError, SlipError, StorageError, ValidationError
from ..models import PaymentSlip
from ..repositories import SlipRepository
from ..time_utils import to_utc_z
from ..validation import SLIP_STATUS_APPROVED, parse_amount, parse_cart_id
from .concurrency import run_with_retry
from .order_mirror_service import reconcile_order
from .snapshot_service import capture_snapshot
from .stock_deduction_service import group_quantities, resolve_line_items
from .storage_service import LocalSlipStorage, StoredFile

logger = logging.getLogger(__name__)

DELETE_MODE_HARD = "hard"
DELETE_MODE_SOFT = "soft"
DELETE_MODES = (DELETE_MODE_HARD, DELETE_MODE_SOFT)

MAX_ADDRESS_LENGTH = 2000


@dataclass(frozen=True)
class SlipReceipt:
    slip_id: int
    order_id: int
    slip_path: str
    shipping_address: Optional[str]
    snapshot_items: int

    def to_dict(self) -> dict:
        return {
            "slip_id": self.slip_id,
            "order_id": self.order_id,
            "slip_path": self.slip_path,
            "shipping_address": self.shipping_address,
        }


def _clean_address(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if len(text) > MAX_ADDRESS_LENGTH:
        raise ValidationError(f"shipping address must be at most {MAX_ADDRESS_LENGTH} characters")
    return text or None


# =============================================================================
# SUBMISSION
# =============================================================================

def _discard_file(storage: LocalSlipStorage, stored: StoredFile) -> None:
    try:
        storage.delete(stored.reference)
    except StorageError:
        # The original failure is what the caller needs to see
        logger.exception("Could not remove orphaned slip file %s", stored.path)


def submit_slip(
    repo: SlipRepository,
    storage: LocalSlipStorage,
    *,
    user_id: int,
    cart_id,
    amount,
    upload,
    shipping_address=None,
) -> SlipReceipt:
    """
    Record an uploaded payment slip.

    The address is the one given with the upload, else the cart's saved
    address, else empty.

    Raises:
        ValidationError: Missing/invalid file, cart_id or amount
        StorageError: File could not be written
        DatabaseError: Transaction failed; it was rolled back and the file removed
    """
    if upload is None or not getattr(upload, "filename", None):
        raise ValidationError("Slip file is required")
    cart_id = parse_cart_id(cart_id)
    amount = parse_amount(amount)
    explicit_address = _clean_address(shipping_address)

    stored = storage.save(upload)

    def _record() -> SlipReceipt:
        address = explicit_address or repo.cart_address(cart_id)
        slip = repo.insert_slip(
            cart_id=cart_id,
            user_id=user_id,
            amount=amount,
            slip_path=stored.reference,
            shipping_address=address,
        )
        items = capture_snapshot(repo, slip.id, cart_id)
        order_id = reconcile_order(repo, user_id, cart_id, amount)
        repo.commit()
        return SlipReceipt(
            slip_id=slip.id,
            order_id=order_id,
            slip_path=stored.reference,
            shipping_address=address,
            snapshot_items=items,
        )

    try:
        receipt = run_with_retry(_record, session=repo)
    except Exception as exc:
        repo.rollback()
        _discard_file(storage, stored)
        if isinstance(exc, SlipError):
            raise
        logger.exception("Slip submission failed for user %s cart %s", user_id, cart_id)
        raise DatabaseError(f"Could not record slip for cart {cart_id}") from exc

    logger.info(
        "Slip %s submitted by user %s for cart %s (amount %s, order %s, %d snapshot item(s))",
        receipt.slip_id, user_id, cart_id, amount, receipt.order_id, receipt.snapshot_items,
    )
    return receipt


# =============================================================================
# LISTING
# =============================================================================

def _identity(path: str) -> str:
    return path


def slip_view(repo: SlipRepository, slip: PaymentSlip, url_builder: Callable[[str], str] = _identity) -> dict:
    """Slip projection with owner, resolved line items and a viewable URL."""
    source, lines = resolve_line_items(repo, slip)
    shipping_address = slip.shipping_address
    if not shipping_address and slip.cart_id is not None:
        shipping_address = repo.cart_address(slip.cart_id)

    data = slip.to_dict()
    data.update({
        "user_name": slip.user.name if slip.user else None,
        "user_email": slip.user.email if slip.user else None,
        "slip_url": url_builder(slip.slip_path) if slip.slip_path else None,
        "shipping_address": shipping_address,
        "products": [line.to_dict() for line in lines],
        "products_source": source,
    })
    return data


def list_slips(
    repo: SlipRepository,
    status: Optional[str] = None,
    user_id: Optional[int] = None,
    url_builder: Callable[[str], str] = _identity,
) -> list[dict]:
    """Non-deleted slips, newest first, optionally filtered by status and owner."""
    return [slip_view(repo, slip, url_builder) for slip in repo.list_slips(status=status, user_id=user_id)]


def list_user_slips(repo: SlipRepository, user_id: int, url_builder: Callable[[str], str] = _identity) -> list[dict]:
    return list_slips(repo, user_id=user_id, url_builder=url_builder)


def find_unrecoverable_slips(repo: SlipRepository) -> list[dict]:
    """
    Approved, flagged slips whose line items can no longer be resolved.

    These were (or will be) approved without any stock coming off and need
    a manual inventory correction.
    """
    unrecoverable = []
    for slip in repo.list_slips(status=SLIP_STATUS_APPROVED):
        if not slip.stock_deducted:
            continue
        source, lines = resolve_line_items(repo, slip)
        if group_quantities(lines):
            continue
        unrecoverable.append({
            "id": slip.id,
            "cart_id": slip.cart_id,
            "user_id": slip.user_id,
            "amount": float(slip.amount or 0),
            "created_at": to_utc_z(slip.created_at),
        })
    return unrecoverable


# =============================================================================
# DELETION
# =============================================================================

def _delete_mode(mode: Optional[str]) -> str:
    if not mode and has_app_context():
        mode = current_app.config.get("SLIP_DELETE_MODE", DELETE_MODE_HARD)
    mode = (mode or DELETE_MODE_HARD).strip().lower()
    if mode not in DELETE_MODES:
        raise ValidationError(f"mode must be one of {list(DELETE_MODES)}")
    return mode


def delete_slip(repo: SlipRepository, storage: LocalSlipStorage, slip_id: int, mode: Optional[str] = None) -> dict:
    """
    Remove a slip.

    hard: deletes the row and its snapshot items, then the stored file once
    the deletion is committed. A file that cannot be removed is logged and
    left behind; the row is gone either way.
    soft: stamps deleted_at; the slip disappears from listings, file kept.
    Stock is not restored in either mode.

    Raises:
        ValidationError: Unknown mode
        NotFoundError: Slip does not exist (soft mode: or is already deleted)
    """
    mode = _delete_mode(mode)
    slip_path = None
    try:
        if mode == DELETE_MODE_SOFT:
            if not repo.tombstone_slip(slip_id):
                raise NotFoundError(f"Slip {slip_id} not found")
            repo.commit()
        else:
            # Hard delete also purges slips that were soft-deleted earlier
            slip = repo.find_slip(slip_id, include_deleted=True)
            if slip is None:
                raise NotFoundError(f"Slip {slip_id} not found")
            slip_path = slip.slip_path
            repo.delete_slip(slip_id)
            repo.commit()
    except SlipError:
        repo.rollback()
        raise
    except SQLAlchemyError as exc:
        repo.rollback()
        logger.exception("Failed to delete slip %s", slip_id)
        raise DatabaseError(f"Could not delete slip {slip_id}") from exc

    if slip_path:
        try:
            storage.delete(slip_path)
        except StorageError:
            logger.exception("Slip %s deleted but its file %s could not be removed", slip_id, slip_path)

    logger.info("Slip %s deleted (%s)", slip_id, mode)
    return {"id": slip_id, "mode": mode}


# =============================================================================
# SHIPPING ADDRESS
# =============================================================================

def save_cart_address(repo: SlipRepository, user_id: int, cart_id, address) -> dict:
    """
    Save the shipping address for a cart and copy it onto the user's PENDING
    slips for that cart.
    """
    cart_id = parse_cart_id(cart_id)
    address = _clean_address(address)
    if not address:
        raise ValidationError("address is required")

    try:
        repo.save_cart_address(cart_id, address)
        stamped = repo.stamp_pending_slip_address(user_id, cart_id, address)
        repo.commit()
    except SQLAlchemyError as exc:
        repo.rollback()
        logger.exception("Failed to save address for cart %s", cart_id)
        raise DatabaseError(f"Could not save address for cart {cart_id}") from exc

    return {"cart_id": cart_id, "address": address, "updated_slips": stamped}
