# Overview: Service-layer operations for suppliers; encapsulates business logic and database work.

"""
Supplier Service

DESIGN:
- Supplier names are unique and non-empty.
- Products reference suppliers weakly: deleting a supplier clears
  products.supplier_id and leaves the products in place.
"""

from flask import current_app

from ..extensions import db
from ..models import Supplier, Product
from ..validation import ConflictError, NotFoundError, optional_text, require_name
from .concurrency import begin_write, run_with_retry


def get_supplier_id(name: str) -> int | None:
    """Exact-name lookup; None when there is no such supplier."""
    if not name or not name.strip():
        return None
    supplier = db.session.query(Supplier).filter_by(name=name.strip()).first()
    return supplier.id if supplier else None


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
    if supplier is None:
        raise NotFoundError("Supplier not found", details={"supplier_id": supplier_id})
    return supplier


def list_suppliers() -> list[Supplier]:
    return db.session.query(Supplier).order_by(Supplier.id.asc()).all()


def create_supplier(
    *,
    name: str,
    phone: str | None = None,
    email: str | None = None,
) -> Supplier:
    """
    Create a new supplier.

    Args:
        name: Supplier name (required, unique)
        phone: Optional phone; blank is stored as NULL
        email: Optional email; blank is stored as NULL

    Raises:
        InvalidArgumentError: If the name is empty
        ConflictError: If a supplier with this name already exists
    """
    name = require_name(name, "Supplier name")

    def _op():
        begin_write()
        if db.session.query(Supplier.id).filter_by(name=name).first():
            raise ConflictError(f"Supplier '{name}' already exists", details={"name": name})

        supplier = Supplier(name=name, phone=optional_text(phone), email=optional_text(email))
        db.session.add(supplier)
        db.session.commit()
        return supplier

    supplier = run_with_retry(_op)
    current_app.logger.info("Supplier %s created (id=%s)", supplier.name, supplier.id)
    return supplier


def delete_supplier(supplier_id: int) -> None:
    """
    Delete a supplier, detaching its products first.

    The FK's ON DELETE SET NULL does the same on enforcing backends; the
    explicit UPDATE keeps the behavior independent of FK enforcement.
    """
    def _op():
        begin_write()
        get_supplier(supplier_id)

        detached = (
            db.session.query(Product)
            .filter(Product.supplier_id == supplier_id)
            .update(
                {Product.supplier_id: None, Product.version_id: Product.version_id + 1},
                synchronize_session=False,
            )
        )
        db.session.query(Supplier).filter_by(id=supplier_id).delete(synchronize_session=False)
        db.session.commit()
        return detached

    detached = run_with_retry(_op)
    db.session.expire_all()
    current_app.logger.info("Supplier %s deleted; %d product(s) detached", supplier_id, detached)
