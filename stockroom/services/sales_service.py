"""
Sales Service - sale transaction orchestration

Per sale: Started -> (ItemPending -> ItemCommitted | ItemRejected)* -> Finalized

- start_sale() is never rolled back by later item failures; a sale with zero
  items is a valid finalized outcome.
- add_item() is one atomic unit: stock decrement, item insert and total
  recompute commit together or not at all.
- InsufficientStockError rejects only the item being added. The sale stays
  open for further items (continue-on-error).
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..extensions import db
from ..models import Product, Sale, SaleItem
from ..validation import (
    InsufficientStockError,
    InvalidArgumentError,
    NotFoundError,
    require_quantity,
)
from .concurrency import begin_write, run_with_retry
from .inventory_service import _reserve_inner, _restore_inner
from .totals_service import _ensure_sale, create_sale, current_total, recompute_total


@dataclass(frozen=True)
class BillLine:
    item_id: int
    product_id: int
    product_name: str
    quantity: int
    price_cents: int
    line_total_cents: int

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "line_total_cents": self.line_total_cents,
        }


@dataclass(frozen=True)
class Bill:
    sale_id: int
    customer: str | None
    lines: tuple[BillLine, ...]
    total_cents: int

    def to_dict(self) -> dict:
        return {
            "sale_id": self.sale_id,
            "customer": self.customer,
            "lines": [line.to_dict() for line in self.lines],
            "total_cents": self.total_cents,
        }


def _resolve_price_cents(product: Product, unit_price_override_cents: int | None) -> int:
    # Absent or non-positive override means "use the product's price"
    if unit_price_override_cents is None or unit_price_override_cents <= 0:
        return product.unit_price_cents
    return unit_price_override_cents


def start_sale(customer: str | None = None) -> Sale:
    """Open a new sale with total 0."""
    sale = create_sale(customer)
    current_app.logger.info("Sale %s started", sale.id)
    return sale


def add_item(
    *,
    sale_id: int,
    product_id: int,
    quantity: int,
    unit_price_override_cents: int | None = None,
) -> SaleItem:
    """
    Add a line item to a sale.

    Raises:
        InvalidArgumentError: quantity <= 0 or a non-integer override
        NotFoundError: unknown sale or product (nothing mutated)
        InsufficientStockError: not enough on hand (nothing mutated)
        TransactionFailedError / BusyError: the unit was rolled back
    """
    quantity = require_quantity(quantity)
    if unit_price_override_cents is not None and (
        not isinstance(unit_price_override_cents, int) or isinstance(unit_price_override_cents, bool)
    ):
        raise InvalidArgumentError("unit_price_override_cents must be an integer number of cents")

    def _op():
        begin_write()
        _ensure_sale(sale_id, lock=True)

        product = db.session.query(Product).filter_by(id=product_id).populate_existing().first()
        if product is None:
            raise NotFoundError("Product not found", details={"product_id": product_id})

        price_cents = _resolve_price_cents(product, unit_price_override_cents)

        _reserve_inner(product_id, quantity)

        item = SaleItem(
            sale_id=sale_id,
            product_id=product_id,
            quantity=quantity,
            price_cents=price_cents,
        )
        db.session.add(item)
        recompute_total(sale_id)

        db.session.commit()
        return item

    try:
        item = run_with_retry(_op)
    except InsufficientStockError as exc:
        current_app.logger.warning("Sale %s: item rejected: %s %s", sale_id, exc, exc.details)
        raise

    current_app.logger.info(
        "Sale %s: added %d x product %s at %d cents", sale_id, quantity, product_id, item.price_cents
    )
    return item


def remove_item(*, sale_id: int, item_id: int) -> None:
    """Delete an item, restore its stock and recompute the sale total, atomically."""
    def _op():
        begin_write()
        _ensure_sale(sale_id, lock=True)

        item = db.session.query(SaleItem).filter_by(id=item_id, sale_id=sale_id).first()
        if item is None:
            raise NotFoundError("Sale item not found", details={"sale_id": sale_id, "item_id": item_id})

        product_id, quantity = item.product_id, item.quantity
        db.session.delete(item)
        db.session.flush()

        _restore_inner(product_id, quantity)
        recompute_total(sale_id)

        db.session.commit()

    run_with_retry(_op)
    current_app.logger.info("Sale %s: removed item %s", sale_id, item_id)


def abort_sale(sale_id: int) -> int:
    """
    Delete a sale and all its items, returning every item's stock.

    Returns the number of items reversed.
    """
    def _op():
        begin_write()
        _ensure_sale(sale_id, lock=True)

        items = db.session.query(SaleItem).filter_by(sale_id=sale_id).all()
        for item in items:
            _restore_inner(item.product_id, item.quantity)

        db.session.query(SaleItem).filter_by(sale_id=sale_id).delete(synchronize_session=False)
        db.session.query(Sale).filter_by(id=sale_id).delete(synchronize_session=False)
        db.session.commit()
        return len(items)

    reversed_count = run_with_retry(_op)
    db.session.expire_all()
    current_app.logger.info("Sale %s aborted; %d item(s) reversed", sale_id, reversed_count)
    return reversed_count


def finalize_sale(sale_id: int) -> Bill:
    """
    Build the bill: line listing plus the stored authoritative total.

    Pure read; the total is not re-summed from the lines.
    """
    sale = _ensure_sale(sale_id)

    rows = (
        db.session.query(SaleItem, Product.name)
        .join(Product, Product.id == SaleItem.product_id)
        .filter(SaleItem.sale_id == sale_id)
        .order_by(SaleItem.id.asc())
        .all()
    )
    lines = tuple(
        BillLine(
            item_id=item.id,
            product_id=item.product_id,
            product_name=name,
            quantity=item.quantity,
            price_cents=item.price_cents,
            line_total_cents=item.line_total_cents,
        )
        for item, name in rows
    )
    return Bill(
        sale_id=sale.id,
        customer=sale.customer,
        lines=lines,
        total_cents=current_total(sale_id),
    )


@dataclass(frozen=True)
class ItemOutcome:
    product_id: int
    quantity: int
    committed: bool
    item_id: int | None = None
    reason: str | None = None
    details: dict = field(default_factory=dict)


class SaleSession:
    """
    One sale-creation request driven by a presentation loop.

    Rejected items (insufficient stock, unknown product) are recorded and the
    session stays open; any other error propagates to the caller.
    """

    STARTED = "STARTED"
    FINALIZED = "FINALIZED"

    def __init__(self, sale_id: int):
        self.sale_id = sale_id
        self.status = self.STARTED
        self.outcomes: list[ItemOutcome] = []

    @classmethod
    def start(cls, customer: str | None = None) -> "SaleSession":
        return cls(start_sale(customer).id)

    @property
    def committed(self) -> list[ItemOutcome]:
        return [o for o in self.outcomes if o.committed]

    @property
    def rejected(self) -> list[ItemOutcome]:
        return [o for o in self.outcomes if not o.committed]

    def _require_open(self) -> None:
        if self.status != self.STARTED:
            raise InvalidArgumentError("Sale session is already finalized", details={"sale_id": self.sale_id})

    def add(
        self,
        product_id: int,
        quantity: int,
        unit_price_override_cents: int | None = None,
    ) -> ItemOutcome:
        self._require_open()
        try:
            item = add_item(
                sale_id=self.sale_id,
                product_id=product_id,
                quantity=quantity,
                unit_price_override_cents=unit_price_override_cents,
            )
        except InsufficientStockError as exc:
            outcome = ItemOutcome(product_id, quantity, False, reason=str(exc), details=exc.details)
        except NotFoundError as exc:
            if "product_id" not in exc.details:
                raise
            outcome = ItemOutcome(product_id, quantity, False, reason=str(exc), details=exc.details)
        else:
            outcome = ItemOutcome(product_id, quantity, True, item_id=item.id)

        self.outcomes.append(outcome)
        return outcome

    def remove(self, item_id: int) -> None:
        self._require_open()
        remove_item(sale_id=self.sale_id, item_id=item_id)
        self.outcomes = [o for o in self.outcomes if o.item_id != item_id]

    def finalize(self) -> Bill:
        self._require_open()
        bill = finalize_sale(self.sale_id)
        self.status = self.FINALIZED
        return bill
