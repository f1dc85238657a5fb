# Overview: Product catalog editing; unit-code lists, store-wide uniqueness, lazy inventory seeding, restock.

"""
Catalog service

Unit codes live on Product.device_codes. Within a product they are unique
case-insensitively (enforced on every save); across the store's products the
same rule is checked by validate_store_codes() whenever a product's codes are
saved.

Inventory records are created lazily through the repository upsert and never
twice for the same (product, store).
"""

from __future__ import annotations

import logging
from typing import Sequence

from ..codec import CodecError, decode_pairs, encode_pairs
from ..extensions import db
from ..models import InventoryRecord, Product
from .concurrency import run_with_retry
from .persistence import get_repository, unit_of_work


logger = logging.getLogger(__name__)


class CatalogError(Exception):
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ProductNotFound(CatalogError):
    pass


def _clean_pairs(codes: Sequence[str], tags: Sequence[str] | None) -> tuple[list[str], list[str]]:
    tags = list(tags or [])
    kept_codes, kept_tags = [], []
    for i, code in enumerate(codes):
        code = (code or "").strip()
        if not code:
            continue
        kept_codes.append(code)
        kept_tags.append(((tags[i] if i < len(tags) else "") or "").strip())
    return kept_codes, kept_tags


def _require_unique_within(codes: list[str]) -> None:
    seen = {}
    dupes = []
    for code in codes:
        key = code.lower()
        if key in seen and code not in dupes:
            dupes.append(code)
        seen[key] = code
    if dupes:
        raise CatalogError("Duplicate codes in product", details={"codes": dupes})


def validate_store_codes(
    store_id: int,
    codes: Sequence[str],
    *,
    product_id: int | None = None,
    repo=None,
) -> dict[str, str]:
    """
    Return {code: owning product name} for codes already listed on another
    product of the store. An empty dict means the codes can be saved.
    """
    repo = repo or get_repository()
    wanted = {code.strip().lower(): code.strip() for code in codes if code and code.strip()}
    if not wanted:
        return {}

    conflicts: dict[str, str] = {}
    for product in repo.list_products(store_id):
        if product_id is not None and product.id == product_id:
            continue
        for code in decode_pairs(product.device_codes, product.device_tags, repo.delimiter)[0]:
            key = code.lower()
            if key in wanted and wanted[key] not in conflicts:
                conflicts[wanted[key]] = product.name
    return conflicts


def _encode(codes: list[str], tags: list[str], delimiter: str) -> tuple[str | None, str | None]:
    try:
        return encode_pairs(codes, tags, delimiter)
    except CodecError as exc:
        raise CatalogError(str(exc), details=exc.details) from exc


def _check_codes(store_id: int, codes: list[str], product_id: int | None, repo) -> None:
    _require_unique_within(codes)
    conflicts = validate_store_codes(store_id, codes, product_id=product_id, repo=repo)
    if conflicts:
        raise CatalogError("Codes already belong to another product", details={"conflicts": conflicts})


def seed_inventory(product: Product, repo=None) -> InventoryRecord:
    """Create the product's inventory record if it does not exist yet."""
    repo = repo or get_repository()
    record = repo.get_inventory_record(product.id, product.store_id)
    if record is not None:
        return record
    logger.debug("Seeding inventory for product %s with %s unit(s)", product.id, product.purchase_qty)
    return repo.upsert_inventory_record(product.id, product.store_id, product.purchase_qty or 0, 0)


def create_product(
    store_id: int,
    name: str,
    *,
    selling_price_cents: int | None = None,
    purchase_price_cents: int | None = None,
    purchase_qty: int | None = None,
    supplier_name: str | None = None,
    description: str | None = None,
    codes: Sequence[str] = (),
    tags: Sequence[str] | None = None,
    repo=None,
) -> Product:
    """
    Create a product and seed its inventory record.

    When purchase_qty is not given the stocked quantity is the number of unit
    codes supplied.
    """
    repo = repo or get_repository()
    name = (name or "").strip()
    if not name:
        raise CatalogError("Product name is required")
    if selling_price_cents is not None and selling_price_cents < 0:
        raise CatalogError("Selling price cannot be negative")

    codes, tags = _clean_pairs(codes, tags)
    if purchase_qty is None:
        purchase_qty = len(codes)
    if purchase_qty < 0:
        raise CatalogError("Purchase quantity cannot be negative")

    _check_codes(store_id, codes, None, repo)
    codes_str, tags_str = _encode(codes, tags, repo.delimiter)

    with unit_of_work("create_product"):
        product = Product(
            store_id=store_id,
            name=name,
            description=description,
            selling_price_cents=selling_price_cents,
            purchase_price_cents=purchase_price_cents,
            purchase_qty=purchase_qty,
            supplier_name=supplier_name,
            device_codes=codes_str,
            device_tags=tags_str,
        )
        db.session.add(product)
        db.session.flush()
        seed_inventory(product, repo)

    logger.info("Created product %s (%s) in store %s with %d code(s)", product.id, name, store_id, len(codes))
    return product


def _get_product(product_id: int, repo) -> Product:
    product = repo.get_product(product_id)
    if product is None:
        raise ProductNotFound("Product not found", details={"product_id": product_id})
    return product


def save_codes(
    product_id: int,
    codes: Sequence[str],
    tags: Sequence[str] | None = None,
    *,
    repo=None,
) -> tuple[Product, list[str], list[str]]:
    """
    Replace a product's code/tag lists.

    Returns (product, added_codes, removed_codes). Stock counters are not
    touched; use restock() for new units.
    """
    repo = repo or get_repository()
    product = _get_product(product_id, repo)
    codes, tags = _clean_pairs(codes, tags)
    _check_codes(product.store_id, codes, product.id, repo)
    codes_str, tags_str = _encode(codes, tags, repo.delimiter)

    before = decode_pairs(product.device_codes, product.device_tags, repo.delimiter)[0]
    before_keys = {c.lower() for c in before}
    after_keys = {c.lower() for c in codes}
    added = [c for c in codes if c.lower() not in before_keys]
    removed = [c for c in before if c.lower() not in after_keys]

    with unit_of_work("save_codes"):
        product.device_codes = codes_str
        product.device_tags = tags_str

    logger.info("Saved codes for product %s: +%d -%d", product_id, len(added), len(removed))
    return product, added, removed


def add_code(product_id: int, code: str, tag: str = "", *, repo=None) -> Product:
    repo = repo or get_repository()
    code = (code or "").strip()
    if not code:
        raise CatalogError("Code cannot be empty")
    product = _get_product(product_id, repo)
    codes, tags = decode_pairs(product.device_codes, product.device_tags, repo.delimiter)
    if any(c.lower() == code.lower() for c in codes):
        raise CatalogError(f'Code "{code}" is already listed on this product', details={"code": code})
    product, _added, _removed = save_codes(product_id, codes + [code], tags + [tag or ""], repo=repo)
    return product


def remove_code(product_id: int, code: str, *, repo=None) -> Product:
    repo = repo or get_repository()
    product = _get_product(product_id, repo)
    codes, tags = decode_pairs(product.device_codes, product.device_tags, repo.delimiter)
    needle = (code or "").strip().lower()
    keep = [i for i, c in enumerate(codes) if c.lower() != needle]
    if len(keep) == len(codes):
        raise CatalogError(f'Code "{code}" is not listed on this product', details={"code": code})
    product, _added, _removed = save_codes(
        product_id,
        [codes[i] for i in keep],
        [tags[i] for i in keep],
        repo=repo,
    )
    return product


def restock(product_id: int, quantity: int, *, repo=None) -> InventoryRecord:
    """Add units to available stock (and to the product's stocked quantity)."""
    repo = repo or get_repository()
    if quantity is None or quantity <= 0:
        raise CatalogError("Restock quantity must be greater than zero")

    def _op():
        with unit_of_work("restock"):
            product = _get_product(product_id, repo)
            record = repo.get_inventory_record(product.id, product.store_id)
            available = record.available_qty if record else 0
            sold = record.quantity_sold if record else 0
            record = repo.upsert_inventory_record(product.id, product.store_id, available + quantity, sold)
            product.purchase_qty = (product.purchase_qty or 0) + quantity
        return record

    record = run_with_retry(_op)
    logger.info("Restocked product %s by %d unit(s)", product_id, quantity)
    return record


def low_stock(store_id: int, threshold: int, *, repo=None) -> list[InventoryRecord]:
    repo = repo or get_repository()
    return [r for r in repo.list_inventory(store_id) if r.available_qty < threshold]
