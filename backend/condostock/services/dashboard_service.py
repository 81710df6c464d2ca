# Overview: Service-layer operations for dashboard metrics; read-only aggregates.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func

from ..extensions import db
from ..models import Product, ResidentAccount, Sale
from ..models.common import money
from condostock.time_utils import start_of_day, start_of_month, utcnow
from .inventory_service import get_totals_by_product


def _sales_since(since: datetime) -> tuple[Decimal, int]:
    total, count = (
        db.session.query(func.coalesce(func.sum(Sale.total), 0), func.count(Sale.id))
        .filter(Sale.created_at >= since)
        .one()
    )
    return Decimal(total or 0), int(count or 0)


def low_stock_items() -> list[dict]:
    """Products whose summed stock is at or below min_stock, lowest first."""
    totals = get_totals_by_product()
    items = []
    for product in db.session.query(Product).order_by(Product.name.asc()).all():
        current = totals.get(product.id, 0)
        if current <= product.min_stock:
            items.append({
                "id": product.id,
                "name": product.name,
                "min_stock": product.min_stock,
                "current_stock": current,
            })
    items.sort(key=lambda item: item["current_stock"])
    return items


def get_metrics(now: datetime | None = None) -> dict:
    """Revenue today/this month, orders today, total receivable, low-stock alerts."""
    now = now or utcnow()

    revenue_today, orders_today = _sales_since(start_of_day(now))
    revenue_month, _ = _sales_since(start_of_month(now))

    receivable = db.session.query(func.coalesce(func.sum(ResidentAccount.balance), 0)).scalar()
    alerts = low_stock_items()

    return {
        "revenue": {
            "today": money(revenue_today),
            "month": money(revenue_month),
            "orders_today": orders_today,
        },
        "finance": {
            "total_receivable": money(receivable or 0),
        },
        "alerts": {
            "low_stock_count": len(alerts),
            "items": alerts,
        },
    }
