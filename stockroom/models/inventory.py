from __future__ import annotations

from ..extensions import db
from stockroom.time_utils import to_utc_z, utcnow
from stockroom.validation import MAX_STOCK


class Supplier(db.Model):
    """
    Supplier master data.

    Products keep a weak reference to their supplier: deleting a supplier
    clears products.supplier_id (ON DELETE SET NULL) and never deletes products.
    """
    __tablename__ = "suppliers"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_suppliers_name"),
        db.CheckConstraint("length(trim(name)) > 0", name="ck_suppliers_name_not_blank"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data plus the authoritative on-hand counter.

    STOCK OWNERSHIP:
    Product.stock is mutated only by services/inventory_service.py, always
    with a single conditional UPDATE inside a write transaction. The CHECK
    constraint below is the last line of defense if a caller gets that wrong.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_products_name"),
        db.CheckConstraint("length(trim(name)) > 0", name="ck_products_name_not_blank"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_products_unit_price_nonneg"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_nonneg"),
        db.CheckConstraint(f"stock <= {MAX_STOCK}", name="ck_products_stock_max"),
        db.Index("ix_products_stock", "stock"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)

    supplier_id = db.Column(
        db.Integer,
        db.ForeignKey("suppliers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Authoritative storage in cents (callers format for display)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    stock = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    supplier = db.relationship(
        "Supplier",
        backref=db.backref("products", lazy=True, passive_deletes=True),
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "supplier_id": self.supplier_id,
            "unit_price_cents": self.unit_price_cents,
            "stock": self.stock,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class Purchase(db.Model):
    """Incoming stock event. Inserted together with the stock increment it causes."""
    __tablename__ = "purchases"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_purchases_quantity_positive"),
        db.CheckConstraint("cost_price_cents >= 0", name="ck_purchases_cost_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    quantity = db.Column(db.Integer, nullable=False)
    cost_price_cents = db.Column(db.Integer, nullable=False)
    note = db.Column(db.String(255), nullable=True)

    purchased_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    product = db.relationship(
        "Product",
        backref=db.backref("purchases", lazy=True, passive_deletes=True),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "cost_price_cents": self.cost_price_cents,
            "note": self.note,
            "purchased_at": to_utc_z(self.purchased_at),
        }
