from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Order(db.Model):
    """
    Durable order mirrored from a cart when a payment slip is submitted.

    LINKING:
    cart_id is recorded when the mirror creates or re-projects the order, but
    rows written before that column existed only carry (ordered_by_id,
    cart_total). Lookups therefore try cart_id first and fall back to
    matching the owner and total within 0.005.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_owner_created", "ordered_by_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    ordered_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    cart_id = db.Column(db.Integer, nullable=True, index=True)

    cart_total = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    status = db.Column(db.String(32), nullable=False, default="processing")
    provenance_id = db.Column(db.String(64), nullable=False, unique=True)
    currency = db.Column(db.String(8), nullable=False, default="THB")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship("OrderItem", backref="order", lazy=True, cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Order id={self.id} owner={self.ordered_by_id} total={self.cart_total}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ordered_by_id": self.ordered_by_id,
            "cart_id": self.cart_id,
            "cart_total": float(self.cart_total or 0),
            "status": self.status,
            "provenance_id": self.provenance_id,
            "currency": self.currency,
            "items": [item.to_dict() for item in self.items],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)

    count = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "count": self.count,
            "price": float(self.price or 0),
        }
