from __future__ import annotations

from ..codec import decode_pairs
from ..extensions import db
from ..time_utils import to_utc_z


class DebtEntry(db.Model):
    """
    Unpaid-supplies record: units handed to a customer on credit.

    Debts carry unit codes like sales but do not count as sold and do not
    move inventory counters.
    """
    __tablename__ = "debt_entries"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    customer_name = db.Column(db.String(255), nullable=False)
    phone_number = db.Column(db.String(64), nullable=True)
    supplier = db.Column(db.String(255), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    owed_cents = db.Column(db.Integer, nullable=False)
    deposited_cents = db.Column(db.Integer, nullable=False, default=0)
    remaining_balance_cents = db.Column(db.Integer, nullable=False)

    device_codes = db.Column(db.Text, nullable=False)
    device_tags = db.Column(db.Text, nullable=True)

    date = db.Column(db.Date, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        codes, tags = decode_pairs(self.device_codes, self.device_tags)
        return {
            "id": self.id,
            "store_id": self.store_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "customer_name": self.customer_name,
            "phone_number": self.phone_number,
            "supplier": self.supplier,
            "quantity": self.quantity,
            "owed_cents": self.owed_cents,
            "deposited_cents": self.deposited_cents,
            "remaining_balance_cents": self.remaining_balance_cents,
            "codes": codes,
            "tags": tags,
            "date": self.date.isoformat() if self.date else None,
            "created_at": to_utc_z(self.created_at),
        }
