from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Store(db.Model):
    """
    A retail store.

    Every product, inventory record, sale and debt is scoped to exactly one
    store. Codes are only required to be unique within a store.
    """
    __tablename__ = "stores"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "created_at": to_utc_z(self.created_at),
        }
