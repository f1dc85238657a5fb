"""Device lookup: where a unit code lives in the catalog, the sales ledger and the debts."""

from __future__ import annotations

from sqlalchemy import func

from ..codec import decode_list
from ..extensions import db
from ..models import DebtEntry
from ..validation import ValidationError
from .persistence import get_repository


def lookup_device(store_id: int, code: str, *, repo=None) -> dict:
    repo = repo or get_repository()
    code = (code or "").strip()
    if not code:
        raise ValidationError("Code cannot be empty")

    product = repo.find_product_by_code(store_id, code)
    tag = ""
    if product is not None:
        codes = product.codes
        tags = product.tags
        for i, c in enumerate(codes):
            if c.lower() == code.lower():
                tag = tags[i] if i < len(tags) else ""
                break

    sales = repo.sale_lines_with_code(store_id, code)

    debts = [
        d for d in (
            db.session.query(DebtEntry)
            .filter(
                DebtEntry.store_id == store_id,
                func.lower(DebtEntry.device_codes).contains(code.lower(), autoescape=True),
            )
            .order_by(DebtEntry.id)
            .all()
        )
        if any(c.lower() == code.lower() for c in decode_list(d.device_codes, repo.delimiter))
    ]

    return {
        "code": code,
        "found": product is not None or bool(sales) or bool(debts),
        "product": product.to_dict() if product else None,
        "tag": tag,
        "sold": bool(sales),
        "sales": [line.to_dict() for line in sales],
        "debts": [d.to_dict() for d in debts],
    }
