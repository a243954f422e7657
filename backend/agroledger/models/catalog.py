from __future__ import annotations

from ..extensions import db
from agroledger.time_utils import to_utc_z

PRODUCT_UNITS = ("UN", "KG", "SC", "CX", "LT", "PAR")


class Product(db.Model):
    """
    Product master data.

    Stock is a plain mutable counter owned by the stock reconciler. It is
    only meaningful when track_stock is set; it may go negative to signal
    an over-sale.

    Barcodes are optional but unique when present.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    department = db.Column(db.String(64), nullable=True)
    sub_category = db.Column(db.String(64), nullable=True)
    category = db.Column(db.String(64), nullable=True)
    animal_type = db.Column(db.String(64), nullable=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=True)
    unit = db.Column(db.String(8), nullable=False, default="UN")

    track_stock = db.Column(db.Boolean, nullable=False, default=False)
    stock = db.Column(db.Float, nullable=True)
    min_stock = db.Column(db.Float, nullable=True)

    barcode = db.Column(db.String(64), nullable=True, unique=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock}>"

    @property
    def is_low_stock(self) -> bool:
        if not self.track_stock or self.stock is None or self.min_stock is None:
            return False
        return self.stock <= self.min_stock

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "department": self.department,
            "sub_category": self.sub_category,
            "category": self.category,
            "animal_type": self.animal_type,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "unit": self.unit,
            "track_stock": self.track_stock,
            "stock": self.stock,
            "min_stock": self.min_stock,
            "barcode": self.barcode,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
