from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class InventoryRecord(db.Model):
    """
    Aggregate stock counters for one (product, store) pair.

    LIFECYCLE:
    - Created lazily the first time a product is observed (upsert keyed on the
      pair; the unique constraint guarantees it is never created twice).
    - available_qty is mutated only by the stock ledger updater and restocks.
    - quantity_sold is monotonic.

    CONCURRENCY:
    version_id is an optimistic-lock column. A read-then-write adjustment
    that races another writer fails with StaleDataError on flush and is
    retried by services.concurrency.run_with_retry.
    """
    __tablename__ = "inventory_records"
    __table_args__ = (
        db.UniqueConstraint("product_id", "store_id", name="uq_inventory_product_store"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    available_qty = db.Column(db.Integer, nullable=False, default=0)
    quantity_sold = db.Column(db.Integer, nullable=False, default=0)

    last_updated = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", backref=db.backref("inventory_records", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "store_id": self.store_id,
            "available_qty": self.available_qty,
            "quantity_sold": self.quantity_sold,
            "last_updated": to_utc_z(self.last_updated),
            "version_id": self.version_id,
        }
