# Overview: Stock ledger; the only code that moves Product.stock.

# stockroom/services/inventory_service.py

from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..models import Product, Purchase
from ..validation import (
    InsufficientStockError,
    InvalidArgumentError,
    MAX_STOCK,
    NotFoundError,
    require_price_cents,
    require_quantity,
)
from stockroom.time_utils import to_utc_naive, utcnow
from .concurrency import begin_write, lock_for_update, run_with_retry
"""
Stockroom Stock Invariants (authoritative)

Stock model:
- Product.stock is the authoritative on-hand counter; purchases and sale
  items are events folded into it, never re-summed at read time.
- Stock stays within [0, MAX_STOCK]. Schema CHECKs back both bounds up.

Mutations:
- RECEIVE inserts a Purchase and increments stock in the same transaction.
- RESERVE is a single conditional UPDATE (stock >= qty) so the check and the
  decrement are indivisible for concurrent callers on the same product.
- RESTORE increments stock to reverse an earlier RESERVE. Increments are
  conditional on staying at or below MAX_STOCK.

Transactions:
- Public functions are complete units (begin_write ... commit, retried).
- _inner functions run inside a caller's unit and never commit.
"""


def _ensure_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def _parse_purchased_at(value) -> datetime:
    """None -> now; aware datetimes are converted to UTC-naive."""
    if value is None:
        return utcnow()
    if isinstance(value, datetime):
        purchased_dt = to_utc_naive(value)
        if purchased_dt > utcnow() + timedelta(minutes=2):
            raise InvalidArgumentError("purchased_at cannot be in the future")
        return purchased_dt
    raise InvalidArgumentError("invalid purchased_at")


def get_stock(product_id: int) -> int:
    """Current on-hand quantity straight from the product row."""
    stock = db.session.query(Product.stock).filter_by(id=product_id).scalar()
    if stock is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return int(stock)


def list_purchases(product_id: int, limit: int = 200) -> list[Purchase]:
    _ensure_product(product_id)
    return (
        db.session.query(Purchase)
        .filter_by(product_id=product_id)
        .order_by(Purchase.purchased_at.desc(), Purchase.id.desc())
        .limit(limit)
        .all()
    )


def _receive_stock_inner(
    *,
    product_id: int,
    quantity: int,
    cost_price_cents: int,
    purchased_dt: datetime,
    note: str | None = None,
) -> Purchase:
    """Core RECEIVE logic without retry or commit."""
    purchase = Purchase(
        product_id=product_id,
        quantity=quantity,
        cost_price_cents=cost_price_cents,
        purchased_at=purchased_dt,
        note=note,
    )
    db.session.add(purchase)
    db.session.flush()

    _increment_inner(product_id, quantity)
    return purchase


def _increment_inner(product_id: int, quantity: int) -> None:
    """Conditional increment; the WHERE clause keeps stock at or below MAX_STOCK."""
    updated = (
        db.session.query(Product)
        .filter(Product.id == product_id, Product.stock <= MAX_STOCK - quantity)
        .update(
            {Product.stock: Product.stock + quantity, Product.version_id: Product.version_id + 1},
            synchronize_session=False,
        )
    )
    if updated == 1:
        return

    on_hand = db.session.query(Product.stock).filter_by(id=product_id).scalar()
    if on_hand is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    raise InvalidArgumentError(
        f"Stock would exceed maximum of {MAX_STOCK}",
        details={"product_id": product_id, "requested_quantity": quantity, "on_hand": int(on_hand)},
    )


def receive_stock(
    *,
    product_id: int,
    quantity: int,
    cost_price_cents: int,
    purchased_at=None,
    note: str | None = None,
) -> Purchase:
    """
    Record incoming stock: inserts the purchase and increases stock by
    exactly `quantity`, atomically.

    Raises:
        InvalidArgumentError: quantity out of range, negative cost, or the
            increment would push stock past MAX_STOCK
        NotFoundError: unknown product
    """
    quantity = require_quantity(quantity)
    cost_price_cents = require_price_cents(cost_price_cents, "cost_price_cents")
    purchased_dt = _parse_purchased_at(purchased_at)

    def _op():
        begin_write()
        _ensure_product(product_id, lock=True)

        purchase = _receive_stock_inner(
            product_id=product_id,
            quantity=quantity,
            cost_price_cents=cost_price_cents,
            purchased_dt=purchased_dt,
            note=note,
        )
        db.session.commit()
        return purchase

    purchase = run_with_retry(_op)
    current_app.logger.info("Received %d unit(s) of product %s", quantity, product_id)
    return purchase


def _reserve_inner(product_id: int, quantity: int) -> int:
    """
    Conditional decrement without retry or commit.

    The WHERE clause carries the sufficiency check, so no other writer can
    slip in between the check and the decrement.
    """
    updated = (
        db.session.query(Product)
        .filter(Product.id == product_id, Product.stock >= quantity)
        .update(
            {Product.stock: Product.stock - quantity, Product.version_id: Product.version_id + 1},
            synchronize_session=False,
        )
    )
    if updated == 1:
        return quantity

    on_hand = db.session.query(Product.stock).filter_by(id=product_id).scalar()
    if on_hand is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    raise InsufficientStockError(
        "Insufficient stock for this product",
        details={
            "product_id": product_id,
            "requested_quantity": quantity,
            "on_hand": int(on_hand),
        },
    )


def reserve_and_commit(*, product_id: int, quantity: int) -> int:
    """
    Take `quantity` out of stock if and only if that much is on hand.

    Returns the committed quantity. On InsufficientStockError stock is unchanged.
    """
    quantity = require_quantity(quantity)

    def _op():
        begin_write()
        committed = _reserve_inner(product_id, quantity)
        db.session.commit()
        return committed

    return run_with_retry(_op)


def _restore_inner(product_id: int, quantity: int) -> None:
    _increment_inner(product_id, quantity)


def restore_stock(*, product_id: int, quantity: int) -> None:
    """Reverse an earlier reserve_and_commit: stock += quantity."""
    quantity = require_quantity(quantity)

    def _op():
        begin_write()
        _restore_inner(product_id, quantity)
        db.session.commit()

    run_with_retry(_op)
