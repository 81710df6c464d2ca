# backend/condostock/services/products_service.py
"""
Products Service

A product's stock always lives in batches: creating a product creates its
first batch, and posting an already-known barcode restocks it with a new
batch instead of failing.
"""
from __future__ import annotations

import time
from datetime import date, timedelta

from flask import current_app

from ..extensions import db
from ..errors import ConflictError, NotFoundError, InvalidRequestError
from ..models import Product, Batch, Stock, SaleItem
from ..validation import to_int
from .concurrency import run_with_retry
from .inventory_service import add_batch, get_available_quantity, get_totals_by_product

PRODUCT_MUTABLE_FIELDS = {"name", "description", "barcode", "price", "min_stock", "image_url"}

# Default shelf life of a lot created without an explicit expiry date
DEFAULT_SHELF_LIFE_DAYS = 365


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _auto_batch_code() -> str:
    return f"LOTE-{int(time.time() * 1000)}"


def _default_expiry() -> date:
    return date.today() + timedelta(days=DEFAULT_SHELF_LIFE_DAYS)


def list_products() -> list[dict]:
    """All products ordered by name, each with its summed total_stock."""
    totals = get_totals_by_product()
    products = db.session.query(Product).order_by(Product.name.asc(), Product.id.asc()).all()
    return [p.to_dict(total_stock=totals.get(p.id, 0)) for p in products]


def get_product(product_id: str) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFoundError("product", product_id)
    return product


def find_by_barcode(barcode: str) -> Product:
    product = db.session.query(Product).filter_by(barcode=barcode).first()
    if product is None:
        raise NotFoundError("product", message=f"No product with barcode {barcode}")
    return product


def product_detail(product: Product) -> dict:
    return product.to_dict(total_stock=get_available_quantity(product.id))


def create_or_restock_product(*, patch: dict, initial_stock=None) -> tuple[dict, bool]:
    """
    Create a product with its first batch, or restock an existing barcode.

    When the barcode is already registered, the price is updated and a new
    batch holding `initial_stock` units is added. Returns (product_dict, created).
    """
    qty = 0 if initial_stock in (None, "") else to_int(initial_stock, "stock")
    if qty < 0:
        raise InvalidRequestError("stock must be >= 0")

    barcode = patch.get("barcode")
    if not barcode:
        raise InvalidRequestError("barcode is required")

    def _op():
        product = db.session.query(Product).filter_by(barcode=barcode).first()
        created = product is None

        if created:
            if not patch.get("name"):
                raise InvalidRequestError("name is required")
            product = Product()
            apply_product_patch(product, patch)
            db.session.add(product)
            db.session.flush()
        elif patch.get("price") is not None:
            product.price = patch["price"]

        add_batch(product, code=_auto_batch_code(), expiry_date=_default_expiry(), quantity=qty)
        db.session.commit()

        if created:
            current_app.logger.info("Product created barcode=%s stock=%d", product.barcode, qty)
        else:
            current_app.logger.info("Product restocked barcode=%s +%d", product.barcode, qty)
        return product_detail(product), created

    return run_with_retry(_op)


def update_product(*, product_id: str, patch: dict) -> dict:
    """Update registration data. Stock is never touched here."""
    def _op():
        product = get_product(product_id)

        new_barcode = patch.get("barcode")
        if new_barcode and new_barcode != product.barcode:
            clash = db.session.query(Product).filter(
                Product.barcode == new_barcode, Product.id != product.id
            ).first()
            if clash:
                raise ConflictError(
                    "Barcode already registered to another product.",
                    details={"barcode": new_barcode, "product_id": clash.id},
                )

        apply_product_patch(product, patch)
        db.session.commit()
        return product_detail(product)

    return run_with_retry(_op)


def delete_product(*, product_id: str) -> None:
    """
    Remove a product and everything hanging off it, in one transaction.

    Order: stocks, batches, sale items referencing it, the product.
    Sale headers are kept with their recorded totals.
    """
    def _op():
        product = get_product(product_id)

        batch_ids = [b.id for b in db.session.query(Batch.id).filter(Batch.product_id == product.id)]
        stocks_deleted = 0
        if batch_ids:
            stocks_deleted = (
                db.session.query(Stock)
                .filter(Stock.batch_id.in_(batch_ids))
                .delete()
            )
        batches_deleted = (
            db.session.query(Batch)
            .filter(Batch.product_id == product.id)
            .delete()
        )
        items_deleted = (
            db.session.query(SaleItem)
            .filter(SaleItem.product_id == product.id)
            .delete()
        )
        db.session.query(Product).filter(Product.id == product.id).delete()
        db.session.commit()

        current_app.logger.info(
            "Product %s deleted (stocks=%d batches=%d sale_items=%d)",
            product_id, stocks_deleted, batches_deleted, items_deleted,
        )

    run_with_retry(_op)
