from __future__ import annotations

from ..extensions import db
from condostock.time_utils import to_utc_z, utcnow
from .common import new_id, money

PAYMENT_CREDIT_CARD = "CREDIT_CARD"
PAYMENT_DEBIT_CARD = "DEBIT_CARD"
PAYMENT_PIX = "PIX"
PAYMENT_CASH = "CASH"
PAYMENT_FIADO = "FIADO"
PAYMENT_TYPES = (PAYMENT_CREDIT_CARD, PAYMENT_DEBIT_CARD, PAYMENT_PIX, PAYMENT_CASH, PAYMENT_FIADO)

SALE_COMPLETED = "COMPLETED"


class Sale(db.Model):
    """
    Completed sale. Append-only: created once by sales_service.create_sale
    and never updated afterwards.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_created_at", "created_at"),
        db.Index("ix_sales_resident_created", "resident_id", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)

    total = db.Column(db.Numeric(10, 2), nullable=False)
    payment_type = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=SALE_COMPLETED)

    # Only set for FIADO sales
    resident_id = db.Column(db.String(36), db.ForeignKey("residents.id"), nullable=True)

    # Who rang the sale up (admin at the counter or the resident self-serving);
    # cleared when that resident is deleted
    created_by_id = db.Column(db.String(36), db.ForeignKey("residents.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    resident = db.relationship("Resident", foreign_keys=[resident_id], backref=db.backref("sales", lazy=True))

    def to_dict(self, include_items: bool = True, include_resident: bool = False) -> dict:
        data = {
            "id": self.id,
            "total": money(self.total),
            "payment_type": self.payment_type,
            "status": self.status,
            "resident_id": self.resident_id,
            "created_by_id": self.created_by_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        if include_resident:
            data["resident"] = self.resident.to_dict() if self.resident else None
        return data


class SaleItem(db.Model):
    """One cart line; unit_price is the product price captured at sale time."""
    __tablename__ = "sale_items"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    sale_id = db.Column(db.String(36), db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)

    # Cart order, so items come back in the order they were rung up
    position = db.Column(db.Integer, nullable=False, default=0)

    sale = db.relationship("Sale", backref=db.backref("items", lazy=True, order_by="SaleItem.position"))
    product = db.relationship("Product")

    @property
    def line_total(self):
        return self.unit_price * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": money(self.unit_price),
            "line_total": money(self.line_total),
            "product": self.product.to_dict() if self.product else None,
        }
