from __future__ import annotations

from ..extensions import db
from agroledger.time_utils import to_utc_z, utcnow

EXPENSE_FIXED = "FIXED"
EXPENSE_VARIABLE = "VARIABLE"
EXPENSE_CARD_FEE = "CARD_FEE"
EXPENSE_TYPES = (EXPENSE_FIXED, EXPENSE_VARIABLE, EXPENSE_CARD_FEE)


class Expense(db.Model):
    """
    Operating expense.

    CARD_FEE rows are written by the sale coordinator when a CASH sale is
    paid by card; they are kept as history even if the sale changes later.
    """
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_type_date", "type", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    description = db.Column(db.String(255), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    type = db.Column(db.String(16), nullable=False, default=EXPENSE_VARIABLE)
    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "type": self.type,
            "date": to_utc_z(self.date),
        }


class Setting(db.Model):
    """Flat key/value setting (e.g. credit_fee, debit_fee percentages)."""
    __tablename__ = "settings"

    key = db.Column(db.String(128), primary_key=True)
    value = db.Column(db.Text, nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "key": self.key,
            "value": self.value,
            "updated_at": to_utc_z(self.updated_at),
        }
