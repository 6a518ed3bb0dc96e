# Overview: Read-only projections over products and sales.

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import func

from stockroom.extensions import db
from stockroom.models import Product, Sale, Supplier
from stockroom.time_utils import day_bounds, parse_day
from stockroom.validation import InvalidArgumentError


def list_inventory() -> list[dict]:
    """All products with their supplier name (None when unset), ordered by id."""
    rows = (
        db.session.query(
            Product.id,
            Product.name,
            Supplier.name.label("supplier_name"),
            Product.unit_price_cents,
            Product.stock,
        )
        .outerjoin(Supplier, Supplier.id == Product.supplier_id)
        .order_by(Product.id.asc())
        .all()
    )
    return [
        {
            "id": row.id,
            "name": row.name,
            "supplier_name": row.supplier_name,
            "unit_price_cents": row.unit_price_cents,
            "stock": row.stock,
        }
        for row in rows
    ]


def low_stock(threshold: int) -> list[dict]:
    """Products with stock strictly below threshold, lowest stock first."""
    if not isinstance(threshold, int) or isinstance(threshold, bool):
        raise InvalidArgumentError("threshold must be an integer")

    rows = (
        db.session.query(Product.id, Product.name, Product.stock)
        .filter(Product.stock < threshold)
        .order_by(Product.stock.asc(), Product.id.asc())
        .all()
    )
    return [{"id": row.id, "name": row.name, "stock": row.stock} for row in rows]


def sales_summary(
    from_date: date | datetime | str | None = None,
    to_date: date | datetime | str | None = None,
) -> dict:
    """
    Count and revenue of sales created within an inclusive day range.

    Either bound may be omitted. Revenue sums the stored sale totals.
    """
    try:
        start_day = parse_day(from_date)
        end_day = parse_day(to_date)
    except ValueError as exc:
        raise InvalidArgumentError("dates must be YYYY-MM-DD") from exc

    start_dt, end_dt = day_bounds(start_day, end_day)

    query = db.session.query(
        func.count(Sale.id).label("sales_count"),
        func.coalesce(func.sum(Sale.total_cents), 0).label("revenue_cents"),
    )
    if start_dt is not None:
        query = query.filter(Sale.created_at >= start_dt)
    if end_dt is not None:
        query = query.filter(Sale.created_at < end_dt)

    row = query.one()
    return {
        "from_date": start_day.isoformat() if start_day else None,
        "to_date": end_day.isoformat() if end_day else None,
        "sales_count": int(row.sales_count or 0),
        "revenue_cents": int(row.revenue_cents or 0),
    }
