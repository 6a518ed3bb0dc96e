# stockroom/services/products_service.py
"""
Products Service

- create_product starts every product at stock 0; stock only moves through
  services/inventory_service.py.
- update_price touches unit_price_cents only. Existing sale items keep the
  price they were sold at, so sale totals are unaffected.
"""
from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Product, SaleItem, Supplier
from ..validation import (
    ConflictError,
    NotFoundError,
    TransactionFailedError,
    require_name,
    require_price_cents,
)
from .concurrency import begin_write, lock_for_update, run_with_retry
from .supplier_service import get_supplier_id


def get_product(product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def create_product(
    *,
    name: str,
    unit_price_cents: int,
    supplier_id: int | None = None,
    supplier_name: str | None = None,
) -> Product:
    """
    Create a product with zero stock.

    supplier_id wins over supplier_name. An unknown supplier_id is an error;
    an unknown supplier_name leaves the product without a supplier.
    """
    name = require_name(name, "Product name")
    unit_price_cents = require_price_cents(unit_price_cents, "unit_price_cents")

    def _op():
        begin_write()
        resolved_supplier_id = supplier_id
        if resolved_supplier_id is not None:
            if not db.session.query(Supplier.id).filter_by(id=resolved_supplier_id).first():
                raise NotFoundError("Supplier not found", details={"supplier_id": resolved_supplier_id})
        elif supplier_name:
            resolved_supplier_id = get_supplier_id(supplier_name)
            if resolved_supplier_id is None:
                current_app.logger.warning(
                    "Supplier %r not found; product %r created without supplier", supplier_name, name
                )

        if db.session.query(Product.id).filter_by(name=name).first():
            raise ConflictError(f"Product '{name}' already exists", details={"name": name})

        product = Product(
            name=name,
            supplier_id=resolved_supplier_id,
            unit_price_cents=unit_price_cents,
            stock=0,
        )
        db.session.add(product)
        db.session.commit()
        return product

    return run_with_retry(_op)


def update_price(product_id: int, new_price_cents: int) -> Product:
    """
    Change a product's unit price.

    Raises:
        InvalidArgumentError: negative or non-integer price
        NotFoundError: no product row was affected
    """
    new_price_cents = require_price_cents(new_price_cents, "new_price_cents")

    def _op():
        begin_write()
        product = (
            lock_for_update(db.session.query(Product).filter_by(id=product_id))
            .populate_existing()
            .first()
        )
        if product is None:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        product.unit_price_cents = new_price_cents
        db.session.commit()
        return product

    product = run_with_retry(_op)
    current_app.logger.info("Product %s price set to %d cents", product_id, new_price_cents)
    return product


def delete_product(product_id: int) -> None:
    """
    Delete a product and its purchase history.

    Blocked while any sale item references the product (ON DELETE RESTRICT).
    """
    def _op():
        begin_write()
        get_product(product_id)

        referenced = db.session.query(SaleItem.id).filter_by(product_id=product_id).first()
        if referenced:
            raise TransactionFailedError(
                "Product is referenced by sale items and cannot be deleted",
                details={"product_id": product_id},
            )

        db.session.query(Product).filter_by(id=product_id).delete(synchronize_session=False)
        db.session.commit()

    run_with_retry(_op)
    db.session.expire_all()
