# Overview: Stock Ledger Updater; commits draft sales and compensates inventory on edit/delete.

"""
Stock Ledger Updater

Inventory invariants (authoritative):
- available_qty(product) == stocked units - sum(quantity of committed sale
  lines for that product), maintained incrementally:
    commit: available_qty -= line quantity (summed per product)
    edit:   available_qty -= (new_quantity - original_quantity)
    delete: available_qty += original_quantity
- A commit is checked in full before anything is written; one short product
  fails the whole commit with InsufficientStock.
- Each operation runs as one unit of work. Inserts and counter updates are
  either all committed or all rolled back.
- Counter writes are read-then-write against a versioned InventoryRecord; a
  concurrent writer makes the flush fail with StaleDataError and the whole
  unit of work is retried with fresh reads.
- quantity_sold only grows: commits and upward edits add to it, downward
  edits and deletes leave it.

Lifecycle: DRAFT -> COMMITTED -> (edit) -> COMMITTED -> DELETED.
"""

from __future__ import annotations

import logging

from ..codec import CodecError, decode_pairs, encode_pairs
from ..extensions import db
from ..models import SaleGroup, SaleLine
from .concurrency import run_with_retry
from .draft import STATUS_DRAFT, DraftLine, DraftTransaction
from .persistence import get_repository, unit_of_work


logger = logging.getLogger(__name__)

MAX_PAYMENT_METHOD_LENGTH = 32


class StockError(Exception):
    """Raised for commit/edit/delete errors on committed transactions."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class InsufficientStock(StockError):
    def __init__(self, product_name: str, available: int, requested: int | None = None):
        super().__init__(
            f"Insufficient stock for {product_name}: only {available} available",
            details={"product_name": product_name, "available": available, "requested": requested},
        )
        self.product_name = product_name
        self.available = available
        self.requested = requested


class CommitError(StockError):
    """The draft (or edit) is not valid for commit."""


class SaleLineNotFound(StockError):
    pass


# ----------------------------------------------------------------------
# Validation
# ----------------------------------------------------------------------

def _duplicates(codes) -> list[str]:
    seen = set()
    dupes = []
    for code in codes:
        key = code.lower()
        if key in seen and code not in dupes:
            dupes.append(code)
        seen.add(key)
    return dupes


def committable_lines(draft: DraftTransaction) -> list[DraftLine]:
    """Lines the operator actually used; untouched blank lines are ignored."""
    return [line for line in draft.lines if line.is_bound or line.assigned_codes]


def validate_draft(draft: DraftTransaction, delimiter: str = ",") -> list[DraftLine]:
    """
    Check every line is complete and every code is unique in the draft.

    Returns the lines to commit.
    """
    if draft.status != STATUS_DRAFT:
        raise CommitError(f"Cannot commit a {draft.status} transaction")

    lines = committable_lines(draft)
    if not lines:
        raise CommitError("Cannot commit a transaction with no lines")

    all_codes = []
    for i, line in enumerate(lines):
        if line.product_id is None:
            raise CommitError("Every line needs a product", details={"line": i})
        if line.quantity <= 0:
            raise CommitError("Quantity must be greater than zero", details={"line": i})
        if line.unit_price_cents is None or line.unit_price_cents <= 0:
            raise CommitError("Unit price must be greater than zero", details={"line": i})

        dupes = _duplicates(line.assigned_codes)
        if dupes:
            raise CommitError("Duplicate codes detected in this line", details={"line": i, "codes": dupes})

        try:
            encode_pairs(line.codes, line.tags, delimiter)
        except CodecError as exc:
            raise CommitError(str(exc), details={"line": i, **exc.details}) from exc

        all_codes.extend(line.assigned_codes)

    dupes = _duplicates(all_codes)
    if dupes:
        raise CommitError("Duplicate codes detected across lines", details={"codes": dupes})

    return lines


def _required_by_product(lines: list[DraftLine]) -> dict[int, tuple[str, int]]:
    required: dict[int, tuple[str, int]] = {}
    for line in lines:
        name, qty = required.get(line.product_id, (line.product_name or f"product {line.product_id}", 0))
        required[line.product_id] = (name, qty + line.quantity)
    return required


def _check_availability(repo, store_id: int, required: dict[int, tuple[str, int]]) -> dict[int, int]:
    available: dict[int, int] = {}
    for product_id, (name, qty) in required.items():
        record = repo.get_inventory_record(product_id, store_id)
        on_hand = record.available_qty if record else 0
        if on_hand < qty:
            raise InsufficientStock(name, on_hand, qty)
        available[product_id] = on_hand
    return available


def check_code_ownership(repo, store_id: int, product_id: int, codes) -> None:
    """Every code must still be listed on product_id in the catalog."""
    moved = []
    for code in codes:
        owner = repo.find_product_by_code(store_id, code)
        if owner is None or owner.id != product_id:
            moved.append(code)
    if moved:
        raise CommitError(
            "Codes no longer belong to the product on their line",
            details={"product_id": product_id, "codes": moved},
        )


# ----------------------------------------------------------------------
# Commit
# ----------------------------------------------------------------------

def commit_sale(
    store_id: int,
    draft: DraftTransaction,
    payment_method: str,
    *,
    repo=None,
) -> tuple[SaleGroup, list[SaleLine]]:
    """
    Persist the draft's lines under one SaleGroup and decrement stock.

    Raises CommitError / InsufficientStock before any write; a concurrent
    counter change triggers a full retry.
    """
    repo = repo or get_repository()
    payment_method = (payment_method or "").strip()
    if not payment_method:
        raise CommitError("Payment method is required")
    if len(payment_method) > MAX_PAYMENT_METHOD_LENGTH:
        raise CommitError("Payment method is too long")

    lines = validate_draft(draft, repo.delimiter)
    required = _required_by_product(lines)
    all_codes = [code for line in lines for code in line.assigned_codes]

    def _op():
        with unit_of_work("commit_sale"):
            available = _check_availability(repo, store_id, required)
            for line in lines:
                check_code_ownership(repo, store_id, line.product_id, line.assigned_codes)

            sold = repo.codes_sold_among(store_id, all_codes)
            if sold:
                raise CommitError("Codes already sold", details={"codes": sorted(sold)})

            total = sum(line.quantity * line.unit_price_cents for line in lines)
            group = SaleGroup(store_id=store_id, total_amount_cents=total, payment_method=payment_method)
            db.session.add(group)
            db.session.flush()

            rows = []
            for line in lines:
                codes_str, tags_str = encode_pairs(line.codes, line.tags, repo.delimiter)
                rows.append(SaleLine(
                    store_id=store_id,
                    sale_group_id=group.id,
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price_cents=line.unit_price_cents,
                    amount_cents=line.quantity * line.unit_price_cents,
                    device_codes=codes_str,
                    device_tags=tags_str,
                    payment_method=payment_method,
                ))
            repo.insert_committed_lines(rows)

            for product_id, (_name, qty) in required.items():
                repo.update_available_qty(product_id, store_id, available[product_id] - qty, sold_delta=qty)

        return group, rows

    group, rows = run_with_retry(_op)
    logger.info(
        "Committed sale group %s in store %s: %d line(s), %d unit code(s)",
        group.id, store_id, len(rows), len(all_codes),
    )
    return group, rows


# ----------------------------------------------------------------------
# Edit / delete
# ----------------------------------------------------------------------

def _adjust_for_delta(repo, line: SaleLine, delta: int) -> None:
    if delta == 0:
        return

    record = repo.get_inventory_record(line.product_id, line.store_id)
    name = line.product.name if line.product else f"product {line.product_id}"
    on_hand = record.available_qty if record else 0

    if delta > 0 and on_hand < delta:
        raise InsufficientStock(name, on_hand, delta)

    if record is None:
        repo.upsert_inventory_record(line.product_id, line.store_id, on_hand - delta, max(delta, 0))
    else:
        repo.update_available_qty(line.product_id, line.store_id, on_hand - delta, sold_delta=max(delta, 0))


def edit_sale_line(
    line_id: int,
    *,
    quantity: int | None = None,
    codes: list[str] | None = None,
    tags: list[str] | None = None,
    unit_price_cents: int | None = None,
    payment_method: str | None = None,
    repo=None,
) -> tuple[SaleLine, int]:
    """
    Edit a committed line in place and apply only the quantity delta.

    When codes are given and quantity is not, the quantity follows the code
    count (same rule as the draft synchronizer). Returns (line, delta).
    """
    repo = repo or get_repository()

    def _op():
        with unit_of_work("edit_sale_line"):
            line = repo.get_committed_line(line_id)
            if line is None:
                raise SaleLineNotFound("Sale line not found", details={"line_id": line_id})

            original_qty = line.quantity
            original_amount = line.amount_cents
            fields: dict = {}
            new_qty = quantity

            if codes is not None:
                cleaned = [(c or "").strip() for c in codes]
                assigned = [c for c in cleaned if c]
                dupes = _duplicates(assigned)
                if dupes:
                    raise CommitError("Duplicate codes detected in this sale", details={"codes": dupes})

                sold = repo.codes_sold_among(line.store_id, assigned, exclude_line_id=line.id)
                if sold:
                    raise CommitError("Codes already sold", details={"codes": sorted(sold)})

                old_codes, old_tags = decode_pairs(line.device_codes, line.device_tags, repo.delimiter)
                added = [c for c in assigned if c.lower() not in {o.lower() for o in old_codes}]
                check_code_ownership(repo, line.store_id, line.product_id, added)

                if tags is None:
                    # codes-only edit: kept codes keep their stored tag
                    previous = {c.lower(): t for c, t in zip(old_codes, old_tags)}
                    new_tags = [previous.get(c.lower(), "") for c in cleaned]
                else:
                    new_tags = list(tags)

                try:
                    codes_str, tags_str = encode_pairs(cleaned, new_tags, repo.delimiter)
                except CodecError as exc:
                    raise CommitError(str(exc), details=exc.details) from exc
                fields["device_codes"] = codes_str
                fields["device_tags"] = tags_str

                if new_qty is None:
                    new_qty = max(1, len(assigned))

            if new_qty is None:
                new_qty = original_qty
            if new_qty < 1:
                raise CommitError("Quantity must be greater than zero")

            price = unit_price_cents if unit_price_cents is not None else line.unit_price_cents
            if price <= 0:
                raise CommitError("Unit price must be greater than zero")

            if payment_method is not None:
                payment_method_clean = payment_method.strip()
                if not payment_method_clean:
                    raise CommitError("Payment method is required")
                fields["payment_method"] = payment_method_clean

            delta = new_qty - original_qty
            _adjust_for_delta(repo, line, delta)

            fields["quantity"] = new_qty
            fields["unit_price_cents"] = price
            fields["amount_cents"] = new_qty * price
            line = repo.update_committed_line(line.id, fields)

            if line.sale_group is not None:
                line.sale_group.total_amount_cents += line.amount_cents - original_amount

        return line, delta

    line, delta = run_with_retry(_op)
    logger.info("Edited sale line %s (quantity delta %+d)", line_id, delta)
    return line, delta


def delete_sale_line(line_id: int, *, repo=None) -> dict:
    """
    Remove a committed line and give its units back to available stock.

    Returns the deleted line's dict so callers can release its codes.
    """
    repo = repo or get_repository()

    def _op():
        with unit_of_work("delete_sale_line"):
            line = repo.get_committed_line(line_id)
            if line is None:
                raise SaleLineNotFound("Sale line not found", details={"line_id": line_id})

            snapshot = line.to_dict()
            record = repo.get_inventory_record(line.product_id, line.store_id)
            if record is None:
                repo.upsert_inventory_record(line.product_id, line.store_id, line.quantity, 0)
            else:
                repo.update_available_qty(line.product_id, line.store_id, record.available_qty + line.quantity)

            if line.sale_group is not None:
                line.sale_group.total_amount_cents -= line.amount_cents

            repo.delete_committed_line(line.id)
        return snapshot

    snapshot = run_with_retry(_op)
    logger.info("Deleted sale line %s, restored %d unit(s)", line_id, snapshot["quantity"])
    return snapshot
