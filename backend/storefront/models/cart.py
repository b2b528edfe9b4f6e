from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Cart(db.Model):
    """
    Live shopping cart.

    Ephemeral: the storefront deletes it once checkout is done, so a slip
    must never rely on it still existing at approval time.
    """
    __tablename__ = "carts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    ordered_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    cart_total = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship("CartItem", backref="cart", lazy=True, cascade="all, delete-orphan")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ordered_by_id": self.ordered_by_id,
            "cart_total": float(self.cart_total or 0),
            "items": [item.to_dict() for item in self.items],
            "created_at": to_utc_z(self.created_at),
        }


class CartItem(db.Model):
    __tablename__ = "cart_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)

    count = db.Column(db.Integer, nullable=True, default=1)
    # Price captured when the item went into the cart; falls back to Product.price when null
    price = db.Column(db.Numeric(10, 2), nullable=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cart_id": self.cart_id,
            "product_id": self.product_id,
            "count": self.count,
            "price": float(self.price) if self.price is not None else None,
        }


class CartAddress(db.Model):
    """
    Shipping address typed in at checkout, keyed by cart.

    No foreign key on cart_id: the address outlives the cart so a slip
    submitted later can still resolve it.
    """
    __tablename__ = "cart_addresses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, nullable=False, unique=True, index=True)
    address = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
