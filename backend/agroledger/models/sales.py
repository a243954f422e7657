from __future__ import annotations

from ..extensions import db
from agroledger.time_utils import to_utc_z, utcnow

SALE_TYPE_CASH = "CASH"
SALE_TYPE_CREDIT = "CREDIT"
SALE_TYPES = (SALE_TYPE_CASH, SALE_TYPE_CREDIT)

STATUS_PENDING = "PENDING"
STATUS_PARTIAL = "PARTIAL"
STATUS_PAID = "PAID"

PAYMENT_METHODS = ("MONEY", "PIX", "CREDIT_CARD", "DEBIT_CARD")
CARD_PAYMENT_METHODS = ("CREDIT_CARD", "DEBIT_CARD")

DELIVERY_PENDING = "PENDING"
DELIVERY_DELIVERED = "DELIVERED"
DELIVERY_CANCELED = "CANCELED"
DELIVERY_STATUSES = (DELIVERY_PENDING, DELIVERY_DELIVERED, DELIVERY_CANCELED)

# A balance at or below one cent counts as settled.
PAID_TOLERANCE_CENTS = 1


class Sale(db.Model):
    """
    Sale document.

    INVARIANTS:
    - final_total_cents = subtotal_cents + adjustment_cents
    - 0 <= remaining_balance_cents <= final_total_cents
    - status == PAID iff remaining_balance_cents <= PAID_TOLERANCE_CENTS
    - CASH sales are always PAID with remaining_balance_cents == 0

    client_name is a snapshot taken at sale time and never resynchronized.
    created_at is business time; FIFO allocation orders by it.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_client_created", "client_id", "created_at"),
        db.Index("ix_sales_type_status", "type", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True, index=True)
    client_name = db.Column(db.String(255), nullable=True)

    type = db.Column(db.String(16), nullable=False, default=SALE_TYPE_CASH)

    # All amounts in cents
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    adjustment_cents = db.Column(db.Integer, nullable=False, default=0)  # signed
    final_total_cents = db.Column(db.Integer, nullable=False, default=0)
    remaining_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=STATUS_PAID, index=True)
    payment_method = db.Column(db.String(16), nullable=True)

    # Delivery
    is_delivery = db.Column(db.Boolean, nullable=False, default=False)
    delivery_address = db.Column(db.String(255), nullable=True)
    delivery_status = db.Column(db.String(16), nullable=True)
    delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)
    preferred_delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    client = db.relationship("Client", backref=db.backref("sales", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<Sale id={self.id} type={self.type} total={self.final_total_cents} "
            f"remaining={self.remaining_balance_cents} status={self.status}>"
        )

    @property
    def is_credit(self) -> bool:
        return self.type == SALE_TYPE_CREDIT

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "type": self.type,
            "subtotal_cents": self.subtotal_cents,
            "adjustment_cents": self.adjustment_cents,
            "final_total_cents": self.final_total_cents,
            "remaining_balance_cents": self.remaining_balance_cents,
            "status": self.status,
            "payment_method": self.payment_method,
            "is_delivery": self.is_delivery,
            "delivery_address": self.delivery_address,
            "delivery_status": self.delivery_status,
            "delivery_date": to_utc_z(self.delivery_date) if self.delivery_date else None,
            "preferred_delivery_date": (
                to_utc_z(self.preferred_delivery_date) if self.preferred_delivery_date else None
            ),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """
    Line item owned by exactly one sale.

    Items are never edited in place: a sale edit deletes them all and
    inserts the new list. product_name is the display snapshot at sale time.
    """
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Float, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship(
        "Sale",
        backref=db.backref("items", lazy=True, order_by="SaleItem.id", passive_deletes=True),
    )
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_cents": self.total_cents,
        }
