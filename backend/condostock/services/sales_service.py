"""
Sales Service - single-shot sale processing

A sale is rung up in one call: the cart is validated, every line is
allocated against stock batches earliest-expiry-first, a FIADO sale is
charged to the resident's tab, and the Sale with its items is written.
All of it happens in one transaction; any failure leaves stock and
balances untouched.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..errors import (
    AccountBlockedError,
    CreditLimitExceededError,
    InvalidRequestError,
    NotFoundError,
)
from ..models import Product, Resident, ResidentAccount, Sale, SaleItem
from ..models.sales import PAYMENT_FIADO, PAYMENT_TYPES, SALE_COMPLETED
from ..validation import CENTS, to_int
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .inventory_service import allocate_fefo


@dataclass(frozen=True)
class CartLine:
    product_id: str
    quantity: int


@dataclass(frozen=True)
class SaleRequest:
    """Validated cart. Duplicate product lines are kept as separate lines."""
    items: tuple[CartLine, ...]
    payment_type: str
    resident_id: str | None = None

    @property
    def is_fiado(self) -> bool:
        return self.payment_type == PAYMENT_FIADO


def _pick(data: dict, *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


def parse_sale_request(payload: Any) -> SaleRequest:
    """
    Parse the JSON body of POST /api/sales.

    Accepts snake_case and camelCase keys. resident_id is only kept for
    FIADO sales.
    """
    if not isinstance(payload, dict):
        raise InvalidRequestError("Invalid JSON payload")

    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise InvalidRequestError("items must be a non-empty list")

    lines: list[CartLine] = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise InvalidRequestError(f"items[{index}] must be an object")
        product_id = _pick(raw, "product_id", "productId")
        if not isinstance(product_id, str) or not product_id.strip():
            raise InvalidRequestError(f"items[{index}].product_id must be a string")
        quantity = to_int(raw.get("quantity"), f"items[{index}].quantity")
        if quantity < 1:
            raise InvalidRequestError(f"items[{index}].quantity must be >= 1")
        lines.append(CartLine(product_id=product_id.strip(), quantity=quantity))

    payment_type = _pick(payload, "payment_type", "paymentType")
    if payment_type not in PAYMENT_TYPES:
        raise InvalidRequestError(
            f"payment_type must be one of: {', '.join(PAYMENT_TYPES)}",
            details={"payment_type": payment_type},
        )

    resident_id = None
    if payment_type == PAYMENT_FIADO:
        resident_id = _pick(payload, "resident_id", "residentId")
        if resident_id is not None and not isinstance(resident_id, str):
            raise InvalidRequestError("resident_id must be a string")
        resident_id = resident_id or None

    return SaleRequest(items=tuple(lines), payment_type=payment_type, resident_id=resident_id)


def _charge_account(resident_id: str, total: Decimal) -> ResidentAccount:
    account = lock_for_update(
        db.session.query(ResidentAccount).filter_by(resident_id=resident_id)
    ).first()
    if account is None:
        raise NotFoundError("account", resident_id, message="Resident account not found")

    if account.is_blocked:
        raise AccountBlockedError(
            "Resident account is blocked",
            details={"resident_id": resident_id},
        )

    balance = Decimal(account.balance or 0)
    limit = Decimal(account.credit_limit or 0)
    if balance + total > limit:
        raise CreditLimitExceededError(
            "Credit limit exceeded",
            details={
                "resident_id": resident_id,
                "balance": str(balance.quantize(CENTS)),
                "credit_limit": str(limit.quantize(CENTS)),
                "sale_total": str(total),
                "available": str((limit - balance).quantize(CENTS)),
            },
        )

    account.balance = (balance + total).quantize(CENTS)
    return account


def create_sale(request: SaleRequest, actor: Resident | None = None) -> Sale:
    """
    Ring up a sale atomically.

    Raises:
    - InvalidRequestError: FIADO without resident_id (checked before stock is read)
    - NotFoundError: unknown product or missing resident account
    - InsufficientStockError: a line asks for more than is on hand
    - AccountBlockedError / CreditLimitExceededError: FIADO rejected
    """
    if request.is_fiado and not request.resident_id:
        raise InvalidRequestError("resident_id is required for FIADO sales")

    def _op():
        begin_write_transaction()

        total = Decimal("0.00")
        priced_lines: list[tuple[CartLine, Decimal]] = []
        for line in request.items:
            product = db.session.query(Product).filter_by(id=line.product_id).first()
            if product is None:
                raise NotFoundError("product", line.product_id)

            allocate_fefo(product, line.quantity)

            unit_price = Decimal(product.price).quantize(CENTS)
            total += unit_price * line.quantity
            priced_lines.append((line, unit_price))

        total = total.quantize(CENTS)

        if request.is_fiado:
            _charge_account(request.resident_id, total)

        sale = Sale(
            total=total,
            payment_type=request.payment_type,
            status=SALE_COMPLETED,
            resident_id=request.resident_id if request.is_fiado else None,
            created_by_id=actor.id if actor is not None else None,
        )
        db.session.add(sale)
        db.session.flush()

        for position, (line, unit_price) in enumerate(priced_lines):
            db.session.add(SaleItem(
                sale_id=sale.id,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price=unit_price,
                position=position,
            ))

        db.session.commit()
        current_app.logger.info(
            "Sale %s committed: %s %s (%d lines)",
            sale.id, request.payment_type, total, len(priced_lines),
        )
        return sale

    return run_with_retry(_op)


def belongs_to(sale: Sale, resident_ids: list[str]) -> bool:
    """A sale belongs to a household if it was charged to or rung up by one of its residents."""
    return sale.resident_id in resident_ids or sale.created_by_id in resident_ids


def list_sales(resident_ids: list[str] | None = None) -> list[Sale]:
    """
    Sales newest first. When resident_ids is given, only sales charged to
    or rung up by those residents.
    """
    query = db.session.query(Sale)
    if resident_ids is not None:
        query = query.filter(or_(
            Sale.resident_id.in_(resident_ids),
            Sale.created_by_id.in_(resident_ids),
        ))
    return query.order_by(Sale.created_at.desc(), Sale.id.desc()).all()


def get_sale(sale_id: str) -> Sale:
    sale = db.session.query(Sale).filter_by(id=sale_id).first()
    if sale is None:
        raise NotFoundError("sale", sale_id)
    return sale
