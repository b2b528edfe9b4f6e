# Overview: Admin-driven status transitions for payment slips.

"""
Slip Status State Machine

States: PENDING, APPROVED, REJECTED. Any state may move to any other.

RULES:
- Entering APPROVED from PENDING / REJECTED runs the stock deduction engine
  before the status is written; its gate makes repeated or concurrent
  approvals deduct once.
- APPROVED -> APPROVED only claims the deduction flag. Slips approved before
  the flag existed are thereby marked without deducting a second time.
- Leaving APPROVED never restores stock.

The whole transition (gate, stock, status) commits as one transaction and is
retried on transient database errors.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from ..errors import DatabaseError, NotFoundError, SlipError, ValidationError
from ..repositories import SlipRepository
from ..validation import SLIP_STATUS_APPROVED, SLIP_STATUS_REJECTED, parse_slip_status
from .concurrency import run_with_retry
from .stock_deduction_service import DeductionResult, deduct_on_approval

logger = logging.getLogger(__name__)

SLIP_ACTIONS = {
    "approve": SLIP_STATUS_APPROVED,
    "reject": SLIP_STATUS_REJECTED,
}


@dataclass(frozen=True)
class SlipStatusChange:
    slip_id: int
    previous_status: str
    status: str
    deduction: Optional[DeductionResult] = None

    def to_dict(self) -> dict:
        return {
            "id": self.slip_id,
            "previous_status": self.previous_status,
            "status": self.status,
            "stock_deducted": bool(self.deduction and self.deduction.claimed),
            "deduction": self.deduction.to_dict() if self.deduction else None,
        }


def set_slip_status(repo: SlipRepository, slip_id: int, next_status) -> SlipStatusChange:
    """
    Move a slip to next_status.

    Raises:
        InvalidTransitionError: next_status is not PENDING / APPROVED / REJECTED
        NotFoundError: Slip does not exist (or is soft-deleted)
        DatabaseError: Transaction failed after retries (rolled back)
    """
    status = parse_slip_status(next_status)

    def _transition() -> SlipStatusChange:
        slip = repo.find_slip(slip_id)
        if slip is None:
            raise NotFoundError(f"Slip {slip_id} not found")

        previous = slip.status
        deduction = None

        if status == SLIP_STATUS_APPROVED:
            if previous == SLIP_STATUS_APPROVED:
                if repo.atomic_claim_deduction_flag(slip.id):
                    logger.info("Slip %s was approved before stock tracking; flag recorded, no deduction", slip.id)
            else:
                deduction = deduct_on_approval(repo, slip)
        elif previous == SLIP_STATUS_APPROVED:
            logger.warning("Slip %s moved from APPROVED to %s; deducted stock is not restored", slip.id, status)

        repo.update_slip_status(slip.id, status)
        repo.commit()
        return SlipStatusChange(slip_id=slip.id, previous_status=previous, status=status, deduction=deduction)

    try:
        change = run_with_retry(_transition, session=repo)
    except SlipError:
        repo.rollback()
        raise
    except SQLAlchemyError as exc:
        repo.rollback()
        logger.exception("Status change failed for slip %s", slip_id)
        raise DatabaseError(f"Could not update slip {slip_id}") from exc

    logger.info("Slip %s: %s -> %s", change.slip_id, change.previous_status, change.status)
    return change


def apply_slip_action(repo: SlipRepository, slip_id: int, action) -> SlipStatusChange:
    """approve / reject shorthand for set_slip_status."""
    key = "" if action is None else str(action).strip().lower()
    if key not in SLIP_ACTIONS:
        raise ValidationError("action must be 'approve' or 'reject'")
    return set_slip_status(repo, slip_id, SLIP_ACTIONS[key])
