# Overview: Freezes cart contents into payment_slip_items when a slip is submitted.

"""
Slip Snapshot Capture

WHY: The live cart is deleted after checkout and orders are only linked to
slips heuristically. The snapshot is the one record of what was bought that
nothing else mutates.

FAILURE POLICY:
Capture never aborts slip creation. The insert runs in a SAVEPOINT; on
failure it is rolled back, logged, and the slip is kept. Deduction then
falls back to the live cart / mirrored order, and a slip with nothing
recoverable is reported by find_unrecoverable_slips().
"""

from __future__ import annotations

import logging

from ..repositories import LineItem, SlipRepository

logger = logging.getLogger(__name__)


def snapshot_lines(repo: SlipRepository, cart_id: int) -> list[LineItem]:
    """One line per distinct product, price falling back to the product's current price."""
    return [line for line in repo.cart_lines(cart_id) if line.qty > 0]


def capture_snapshot(repo: SlipRepository, slip_id: int, cart_id: int) -> int:
    """
    Write the cart's line items as the slip's immutable snapshot.

    Returns:
        Number of snapshot rows written (0 for an empty cart or on failure)
    """
    try:
        with repo.savepoint():
            lines = snapshot_lines(repo, cart_id)
            written = repo.insert_snapshot_items(slip_id, lines)
    except Exception:
        logger.exception("Snapshot capture failed for slip %s (cart %s); slip kept without snapshot", slip_id, cart_id)
        return 0

    if not written:
        logger.info("Slip %s submitted for cart %s with no line items", slip_id, cart_id)
    return written
