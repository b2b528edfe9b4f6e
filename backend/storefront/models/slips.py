from __future__ import annotations

from sqlalchemy import false

from ..extensions import db
from ..time_utils import to_utc_z


class PaymentSlip(db.Model):
    """
    Uploaded bank-transfer proof awaiting (or past) admin review.

    DEDUCTION GATE:
    stock_deducted flips false -> true exactly once, through a conditional
    UPDATE. Whoever flips it owns the stock deduction for this slip; every
    other caller is a no-op. It is never reset, not even on rejection.

    cart_id is a soft reference (no foreign key): carts are deleted after
    checkout while the slip must survive.
    """
    __tablename__ = "payment_slips"
    __table_args__ = (
        db.Index("ix_payment_slips_status_created", "status", "created_at"),
        db.Index("ix_payment_slips_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    amount = db.Column(db.Numeric(10, 2), nullable=False)
    slip_path = db.Column(db.String(512), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="PENDING")  # PENDING, APPROVED, REJECTED
    stock_deducted = db.Column(db.Boolean, nullable=False, default=False, server_default=false())
    shipping_address = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    # Soft-delete tombstone
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("User", backref=db.backref("payment_slips", lazy=True))
    items = db.relationship(
        "PaymentSlipItem",
        backref="slip",
        lazy=True,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<PaymentSlip id={self.id} status={self.status} deducted={self.stock_deducted}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cart_id": self.cart_id,
            "user_id": self.user_id,
            "amount": float(self.amount or 0),
            "slip_path": self.slip_path,
            "status": self.status,
            "stock_deducted": bool(self.stock_deducted),
            "shipping_address": self.shipping_address,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PaymentSlipItem(db.Model):
    """
    Frozen line item captured when the slip was submitted.

    IMMUTABLE: written once with the slip, never updated, removed only with
    the slip. title and price are denormalised so the row stays meaningful
    after the product is edited or deleted.
    """
    __tablename__ = "payment_slip_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    slip_id = db.Column(
        db.Integer,
        db.ForeignKey("payment_slips.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True)

    title = db.Column(db.String(255), nullable=False, default="")
    price = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    qty = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "slip_id": self.slip_id,
            "product_id": self.product_id,
            "title": self.title,
            "price": float(self.price or 0),
            "qty": self.qty,
        }
