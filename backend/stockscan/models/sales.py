from __future__ import annotations

from ..codec import decode_pairs
from ..extensions import db
from ..time_utils import to_utc_z


class SaleGroup(db.Model):
    """One committed checkout: groups the lines inserted by a single commit."""
    __tablename__ = "sale_groups"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_method = db.Column(db.String(32), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "total_amount_cents": self.total_amount_cents,
            "payment_method": self.payment_method,
            "created_at": to_utc_z(self.created_at),
        }


class SaleLine(db.Model):
    """
    Committed sale record.

    device_codes / device_tags use the same delimited encoding as Product.
    These rows are the source of truth for "is this unit sold".

    STATUS: COMMITTED on insert. Edits mutate the row in place; deletes remove
    it. Both go through services.stock_ledger so the inventory counter is
    compensated.
    """
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.Index("ix_sale_lines_store_sold", "store_id", "sold_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    sale_group_id = db.Column(db.Integer, db.ForeignKey("sale_groups.id"), nullable=True, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    device_codes = db.Column(db.Text, nullable=True)
    device_tags = db.Column(db.Text, nullable=True)

    payment_method = db.Column(db.String(32), nullable=False)
    sold_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)

    sale_group = db.relationship("SaleGroup", backref=db.backref("lines", lazy=True))
    product = db.relationship("Product")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        codes, tags = decode_pairs(self.device_codes, self.device_tags)
        return {
            "id": self.id,
            "store_id": self.store_id,
            "sale_group_id": self.sale_group_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "amount_cents": self.amount_cents,
            "codes": codes,
            "tags": tags,
            "payment_method": self.payment_method,
            "sold_at": to_utc_z(self.sold_at),
            "version_id": self.version_id,
        }
