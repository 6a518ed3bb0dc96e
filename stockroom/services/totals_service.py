# Overview: Sale aggregator; owns the cached Sale.total_cents.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Sale, SaleItem
from ..validation import NotFoundError, optional_text
from .concurrency import begin_write, lock_for_update, run_with_retry


def _ensure_sale(sale_id: int, *, lock: bool = False) -> Sale:
    query = db.session.query(Sale).filter_by(id=sale_id)
    if lock:
        query = lock_for_update(query)
    sale = query.first()
    if sale is None:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return sale


def create_sale(customer: str | None = None) -> Sale:
    """Create an empty sale (total 0). A blank customer is stored as NULL."""
    customer = optional_text(customer)

    def _op():
        begin_write()
        sale = Sale(customer=customer, total_cents=0)
        db.session.add(sale)
        db.session.commit()
        return sale

    return run_with_retry(_op)


def recompute_total(sale_id: int) -> int:
    """
    Set the sale's total to SUM(quantity * price_cents) over its current items.

    Runs inside the caller's unit: flushes, never commits. Must follow every
    item insert/delete in the same transaction.
    """
    db.session.flush()
    total = (
        db.session.query(func.coalesce(func.sum(SaleItem.quantity * SaleItem.price_cents), 0))
        .filter(SaleItem.sale_id == sale_id)
        .scalar()
    )
    total = int(total or 0)
    updated = (
        db.session.query(Sale)
        .filter(Sale.id == sale_id)
        .update({Sale.total_cents: total}, synchronize_session=False)
    )
    if updated != 1:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return total


def current_total(sale_id: int) -> int:
    """The stored authoritative total; items are not re-summed here."""
    total = db.session.query(Sale.total_cents).filter_by(id=sale_id).scalar()
    if total is None:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return int(total)
