from __future__ import annotations

from ..extensions import db
from condostock.time_utils import to_utc_z, utcnow
from .common import new_id, money


class Product(db.Model):
    """
    Product master data.

    Quantity is NOT stored here: on-hand stock lives in Stock rows, one per
    Batch, so each lot keeps its own expiry date. See
    inventory_service.get_available_quantity for the sum.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        db.Index("ix_products_name", "name"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    barcode = db.Column(db.String(64), nullable=False, unique=True, index=True)
    image_url = db.Column(db.String(512), nullable=True)

    price = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    # Reorder threshold for the dashboard low-stock alert
    min_stock = db.Column(db.Integer, nullable=False, default=5)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} barcode={self.barcode!r} name={self.name!r}>"

    def to_dict(self, total_stock: int | None = None) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "barcode": self.barcode,
            "image_url": self.image_url,
            "price": money(self.price),
            "min_stock": self.min_stock,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if total_stock is not None:
            data["total_stock"] = total_stock
        return data


class Batch(db.Model):
    """A lot of one product with its own expiry date."""
    __tablename__ = "batches"
    __table_args__ = (
        db.Index("ix_batches_product_expiry", "product_id", "expiry_date"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)

    code = db.Column(db.String(64), nullable=False)
    expiry_date = db.Column(db.Date, nullable=False)

    # Receipt order within the product, 1-based; FEFO tie-break for equal expiry dates
    receipt_seq = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("batches", lazy=True))

    def __repr__(self) -> str:
        return f"<Batch {self.code!r} product={self.product_id} exp={self.expiry_date}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "code": self.code,
            "receipt_seq": self.receipt_seq,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "created_at": to_utc_z(self.created_at),
        }


class Stock(db.Model):
    """
    On-hand quantity of one batch.

    Mutated only by the sale processor (FEFO deduction) and by explicit
    stock updates. version_id makes a concurrent write raise StaleDataError
    even where the database ignores FOR UPDATE.
    """
    __tablename__ = "stocks"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_stocks_quantity_non_negative"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    batch_id = db.Column(db.String(36), db.ForeignKey("batches.id"), nullable=False, unique=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    batch = db.relationship("Batch", backref=db.backref("stock", uselist=False, lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Stock id={self.id} batch={self.batch_id} qty={self.quantity}>"

    def to_dict(self, include_product: bool = False) -> dict:
        data = {
            "id": self.id,
            "batch_id": self.batch_id,
            "quantity": self.quantity,
            "batch": self.batch.to_dict() if self.batch else None,
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_product and self.batch is not None:
            data["product"] = self.batch.product.to_dict()
        return data
