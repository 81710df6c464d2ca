# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

# backend/condostock/services/inventory_service.py

from __future__ import annotations

from datetime import date
from typing import Any, Iterable

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import InsufficientStockError, InvalidRequestError, NotFoundError
from ..models import Product, Batch, Stock
from ..validation import to_decimal, to_int
from condostock.time_utils import parse_iso_date
from .concurrency import lock_for_update, run_with_retry
"""
CondoStock Inventory Invariants (authoritative)

Stock model:
- Every Batch has exactly one Stock row; a product's on-hand quantity is
  SUM(stocks.quantity) over its batches.
- stocks.quantity is never negative (check constraint + allocation guard).

FEFO (first-expired-first-out):
- Sales consume Stock rows ordered by batches.expiry_date ascending; ties
  fall back to batches.receipt_seq (per-product receipt order), so the
  order is stable.
- A deduction is only attempted once the product's total availability
  covers the requested quantity.
- Allocation runs inside the caller's transaction with the rows locked;
  it never commits.
"""


def _fefo_query(product_id: str):
    return (
        db.session.query(Stock)
        .join(Batch, Stock.batch_id == Batch.id)
        .filter(Batch.product_id == product_id, Stock.quantity > 0)
        .order_by(Batch.expiry_date.asc(), Batch.receipt_seq.asc(), Batch.created_at.asc(), Batch.id.asc())
    )


def get_available_quantity(product_id: str) -> int:
    """Total on-hand quantity of a product across all of its batches."""
    q = (
        db.session.query(func.coalesce(func.sum(Stock.quantity), 0))
        .join(Batch, Stock.batch_id == Batch.id)
        .filter(Batch.product_id == product_id)
    )
    return int(q.scalar() or 0)


def get_totals_by_product() -> dict[str, int]:
    rows = (
        db.session.query(Batch.product_id, func.coalesce(func.sum(Stock.quantity), 0))
        .join(Stock, Stock.batch_id == Batch.id)
        .group_by(Batch.product_id)
        .all()
    )
    return {product_id: int(total) for product_id, total in rows}


def list_fefo_stocks(product_id: str, *, lock: bool = False) -> list[Stock]:
    """Stock rows with quantity > 0 for a product, earliest expiry first."""
    query = _fefo_query(product_id)
    if lock:
        query = lock_for_update(query)
    return query.all()


def allocate_fefo(product: Product, quantity: int) -> list[dict]:
    """
    Deduct `quantity` units of `product` from its batches, earliest expiry first.

    Must be called inside an open write transaction; rows are locked and
    the caller commits or rolls back. Returns one entry per touched stock
    row: {"stock_id", "batch_id", "quantity"}.

    Raises InsufficientStockError when the total on hand is short.
    """
    if quantity < 1:
        raise InvalidRequestError("quantity must be >= 1")

    stocks = list_fefo_stocks(product.id, lock=True)
    available = sum(s.quantity for s in stocks)

    if available < quantity:
        raise InsufficientStockError(
            f"Insufficient stock for '{product.name}'. Available: {available}",
            details={
                "product_id": product.id,
                "product_name": product.name,
                "requested_quantity": quantity,
                "available": available,
            },
        )

    remaining = quantity
    allocations: list[dict] = []
    for stock in stocks:
        if remaining <= 0:
            break
        take = min(stock.quantity, remaining)
        if take <= 0:
            continue
        stock.quantity -= take
        remaining -= take
        allocations.append({"stock_id": stock.id, "batch_id": stock.batch_id, "quantity": take})

    if remaining > 0:
        # Rows emptied between the total check and the walk
        raise InsufficientStockError(
            f"Insufficient stock for '{product.name}'. Available: {quantity - remaining}",
            details={
                "product_id": product.id,
                "product_name": product.name,
                "requested_quantity": quantity,
                "available": quantity - remaining,
            },
        )

    db.session.flush()
    return allocations


def add_batch(product: Product, *, code: str, expiry_date: date, quantity: int) -> Stock:
    """Create a Batch plus its Stock row. Caller commits."""
    last_seq = (
        db.session.query(func.coalesce(func.max(Batch.receipt_seq), 0))
        .filter(Batch.product_id == product.id)
        .scalar()
    )
    batch = Batch(
        product_id=product.id,
        code=code,
        expiry_date=expiry_date,
        receipt_seq=int(last_seq or 0) + 1,
    )
    db.session.add(batch)
    db.session.flush()

    stock = Stock(batch_id=batch.id, quantity=quantity)
    db.session.add(stock)
    db.session.flush()
    return stock


def _parse_expiry(value: Any) -> date:
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise InvalidRequestError("expiry_date must be an ISO-8601 date")
    try:
        parsed = parse_iso_date(value)
    except ValueError:
        raise InvalidRequestError("expiry_date must be an ISO-8601 date")
    if parsed is None:
        raise InvalidRequestError("expiry_date is required")
    return parsed


def receive_stock(*, product_id: str, batch_code: str, expiry_date: Any, quantity: Any) -> dict:
    """
    Receive a new lot of a product: one Batch + one Stock in one transaction.
    """
    if not batch_code or not str(batch_code).strip():
        raise InvalidRequestError("batch_code is required")
    qty = to_int(quantity, "quantity")
    if qty < 1:
        raise InvalidRequestError("quantity must be >= 1")
    expiry = _parse_expiry(expiry_date)

    def _op():
        product = db.session.query(Product).filter_by(id=product_id).first()
        if product is None:
            raise NotFoundError("product", product_id)

        stock = add_batch(product, code=str(batch_code).strip(), expiry_date=expiry, quantity=qty)
        db.session.commit()
        return {"batch": stock.batch.to_dict(), "stock": stock.to_dict()}

    return run_with_retry(_op)


def list_stocks(product_id: str | None = None) -> list[dict]:
    query = db.session.query(Stock).join(Batch, Stock.batch_id == Batch.id)
    if product_id is not None:
        query = query.filter(Batch.product_id == product_id)
    stocks = query.order_by(Batch.expiry_date.asc(), Batch.receipt_seq.asc(), Batch.created_at.asc()).all()
    return [s.to_dict(include_product=True) for s in stocks]


def get_stock(stock_id: str) -> Stock:
    stock = db.session.query(Stock).filter_by(id=stock_id).first()
    if stock is None:
        raise NotFoundError("stock", stock_id)
    return stock


def update_stock(stock_id: str, *, quantity: Any = None, batch_code: Any = None, expiry_date: Any = None) -> dict:
    """Adjust a stock row and/or its batch metadata atomically."""
    new_qty = None
    if quantity is not None:
        new_qty = to_int(quantity, "quantity")
        if new_qty < 0:
            raise InvalidRequestError("quantity must be >= 0")
    new_expiry = _parse_expiry(expiry_date) if expiry_date is not None else None
    new_code = str(batch_code).strip() if batch_code is not None else None
    if new_code == "":
        raise InvalidRequestError("batch_code cannot be blank")

    def _op():
        stock = lock_for_update(db.session.query(Stock).filter_by(id=stock_id)).first()
        if stock is None:
            raise NotFoundError("stock", stock_id)

        if new_code is not None:
            stock.batch.code = new_code
        if new_expiry is not None:
            stock.batch.expiry_date = new_expiry
        if new_qty is not None:
            current_app.logger.info(
                "Stock %s adjusted %d -> %d", stock.id, stock.quantity, new_qty
            )
            stock.quantity = new_qty

        db.session.commit()
        return stock.to_dict(include_product=True)

    return run_with_retry(_op)


def delete_stock(stock_id: str) -> None:
    """Remove a stock row together with its batch."""
    def _op():
        stock = db.session.query(Stock).filter_by(id=stock_id).first()
        if stock is None:
            raise NotFoundError("stock", stock_id)
        batch_id = stock.batch_id

        db.session.query(Stock).filter(Stock.id == stock_id).delete()
        db.session.query(Batch).filter(Batch.id == batch_id).delete()
        db.session.commit()

    run_with_retry(_op)


# =============================================================================
# BULK IMPORT
# =============================================================================

IMPORT_COLUMNS = ("barcode", "name", "price", "batch_code", "expiry_date", "quantity")


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def normalize_import_row(raw_row: dict[str, Any], row_number: int) -> dict[str, Any]:
    """
    Normalize one import row. Raises InvalidRequestError naming the row.

    name and price are only required when the barcode is not known yet;
    that check happens in import_stock_rows.
    """
    try:
        barcode = _to_text(raw_row.get("barcode"))
        if barcode is None:
            raise InvalidRequestError("barcode is required")
        batch_code = _to_text(raw_row.get("batch_code"))
        if batch_code is None:
            raise InvalidRequestError("batch_code is required")
        quantity = to_int(_to_text(raw_row.get("quantity")) or "", "quantity")
        if quantity < 1:
            raise InvalidRequestError("quantity must be >= 1")
        price_text = _to_text(raw_row.get("price"))
        price = to_decimal(price_text, "price") if price_text is not None else None
        if price is not None and price < 0:
            raise InvalidRequestError("price must be >= 0")
        return {
            "barcode": barcode,
            "name": _to_text(raw_row.get("name")),
            "price": price,
            "batch_code": batch_code,
            "expiry_date": _parse_expiry(_to_text(raw_row.get("expiry_date")) or ""),
            "quantity": quantity,
        }
    except InvalidRequestError as e:
        raise InvalidRequestError(
            f"Row {row_number}: {e.message}",
            details={"row": row_number, "field_error": e.message},
        )


def import_stock_rows(rows: Iterable[dict[str, Any]]) -> dict:
    """
    Bulk-receive stock. Unknown barcodes create the product.

    All rows go in one transaction: one bad row aborts the whole import.
    Row numbers are 1-based data rows.
    """
    normalized = [normalize_import_row(raw, i) for i, raw in enumerate(rows, start=1)]
    if not normalized:
        raise InvalidRequestError("No rows to import")

    def _op():
        created_products = 0
        received_units = 0
        for i, row in enumerate(normalized, start=1):
            product = db.session.query(Product).filter_by(barcode=row["barcode"]).first()
            if product is None:
                if row["name"] is None or row["price"] is None:
                    raise InvalidRequestError(
                        f"Row {i}: name and price are required for new barcode {row['barcode']}",
                        details={"row": i, "barcode": row["barcode"]},
                    )
                product = Product(name=row["name"], barcode=row["barcode"], price=row["price"])
                db.session.add(product)
                db.session.flush()
                created_products += 1
            elif row["price"] is not None:
                product.price = row["price"]

            add_batch(product, code=row["batch_code"], expiry_date=row["expiry_date"], quantity=row["quantity"])
            received_units += row["quantity"]

        db.session.commit()
        current_app.logger.info(
            "Stock import: %d rows, %d new products, %d units",
            len(normalized), created_products, received_units,
        )
        return {
            "rows": len(normalized),
            "products_created": created_products,
            "units_received": received_units,
        }

    return run_with_retry(_op)
