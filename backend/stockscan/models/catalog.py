from __future__ import annotations

from ..codec import decode_pairs
from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data with its serialized units.

    UNIT CODES:
    device_codes holds the unit codes (IMEI/serial-like) of this product as a
    single comma-delimited string; device_tags holds the parallel size/variant
    tags. Use the `codes` / `tags` properties (or stockscan.codec) rather than
    splitting the strings by hand.

    UNIQUENESS:
    - Codes are unique case-insensitively within a product.
    - Across the store's products, uniqueness is validated when the catalog is
      saved (catalog_service.validate_store_codes), not by a DB constraint.

    purchase_qty is the manually-settable stocked quantity. The sellable count
    lives on InventoryRecord.available_qty.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_store_name", "store_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents
    selling_price_cents = db.Column(db.Integer, nullable=True)
    purchase_price_cents = db.Column(db.Integer, nullable=True)
    purchase_qty = db.Column(db.Integer, nullable=False, default=0)

    supplier_name = db.Column(db.String(255), nullable=True)

    device_codes = db.Column(db.Text, nullable=True)
    device_tags = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    store = db.relationship("Store", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def codes(self) -> list[str]:
        return decode_pairs(self.device_codes, self.device_tags)[0]

    @property
    def tags(self) -> list[str]:
        return decode_pairs(self.device_codes, self.device_tags)[1]

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} store_id={self.store_id}>"

    def to_dict(self) -> dict:
        codes, tags = decode_pairs(self.device_codes, self.device_tags)
        return {
            "id": self.id,
            "store_id": self.store_id,
            "name": self.name,
            "description": self.description,
            "selling_price_cents": self.selling_price_cents,
            "purchase_price_cents": self.purchase_price_cents,
            "purchase_qty": self.purchase_qty,
            "supplier_name": self.supplier_name,
            "codes": codes,
            "tags": tags,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
