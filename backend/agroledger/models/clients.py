from __future__ import annotations

from ..extensions import db
from agroledger.time_utils import to_utc_z, utcnow


class Client(db.Model):
    """
    Shop client with a store-credit account.

    credit_cents and total_debt_cents are materialized by the ledger
    engine; they are never written from user input.

    - credit_cents: prepaid/overpaid money available to absorb future debt.
    - total_debt_cents: sum of remaining_balance_cents over the client's
      CREDIT sales, refreshed by debt recomputation.
    """
    __tablename__ = "clients"
    __table_args__ = (
        db.Index("ix_clients_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    cpf = db.Column(db.String(32), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    neighborhood = db.Column(db.String(128), nullable=True)

    credit_cents = db.Column(db.Integer, nullable=False, default=0)
    total_debt_cents = db.Column(db.Integer, nullable=False, default=0)

    last_interaction = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    next_payment_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Client id={self.id} name={self.name!r} debt={self.total_debt_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "cpf": self.cpf,
            "phone": self.phone,
            "address": self.address,
            "neighborhood": self.neighborhood,
            "credit_cents": self.credit_cents,
            "total_debt_cents": self.total_debt_cents,
            "last_interaction": to_utc_z(self.last_interaction),
            "next_payment_date": to_utc_z(self.next_payment_date) if self.next_payment_date else None,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class PaymentRecord(db.Model):
    """
    Money received from a client.

    The record is the source of truth for "money received" no matter how
    the amount was spread over sales. used_credit marks records that
    represent client credit drawn into a sale rather than new money.
    """
    __tablename__ = "payment_records"
    __table_args__ = (
        db.Index("ix_payment_records_client_created", "client_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    used_credit = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    client = db.relationship("Client", backref=db.backref("payments", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "amount_cents": self.amount_cents,
            "used_credit": self.used_credit,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
