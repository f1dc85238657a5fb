# Overview: Unpaid-supplies (debt) entries committed from a scanning draft.

"""
Debts record units handed over on credit. They reuse the draft/scan
machinery but never touch inventory counters or the sold-unit ledger.
"""

from __future__ import annotations

import logging
from datetime import date as date_type
from typing import Sequence

from ..codec import CodecError, decode_pairs, encode_pairs
from ..extensions import db
from ..models import DebtEntry
from ..time_utils import parse_iso_date, utcnow
from .draft import DraftTransaction
from .persistence import get_repository, unit_of_work
from .stock_ledger import CommitError, check_code_ownership, committable_lines


logger = logging.getLogger(__name__)

DEBT_TEXT_FIELDS = {"customer_name": 255, "phone_number": 64, "supplier": 255}


class DebtNotFound(Exception):
    pass


def _to_cents(value, field: str, *, required: bool) -> int:
    if value is None or value == "":
        if required:
            raise CommitError(f"{field} is required", details={"field": field})
        return 0
    try:
        cents = int(value)
    except (TypeError, ValueError):
        raise CommitError(f"{field} must be an integer number of cents", details={"field": field}) from None
    if cents < 0:
        raise CommitError(f"{field} cannot be negative", details={"field": field})
    return cents


def _entry_date(value) -> date_type:
    if value is None or value == "":
        return utcnow().date()
    if isinstance(value, date_type):
        return value
    try:
        return parse_iso_date(str(value))
    except ValueError:
        raise CommitError("date must be an ISO date (YYYY-MM-DD)", details={"field": "date"}) from None


def commit_debts(
    store_id: int,
    draft: DraftTransaction,
    entries: Sequence[dict],
    *,
    repo=None,
) -> list[DebtEntry]:
    """
    Persist one DebtEntry per used draft line.

    entries[i] carries the metadata of the i-th used line: customer_name
    (required), phone_number, supplier, owed_cents (required),
    deposited_cents and date.
    """
    repo = repo or get_repository()
    lines = committable_lines(draft)
    if not lines:
        raise CommitError("Cannot commit a transaction with no lines")
    if len(entries) != len(lines):
        raise CommitError(
            "Each line needs its debt details",
            details={"lines": len(lines), "entries": len(entries)},
        )

    seen: set[str] = set()
    rows = []
    for i, (line, meta) in enumerate(zip(lines, entries)):
        if line.product_id is None:
            raise CommitError("Every line needs a product", details={"line": i})
        if not line.assigned_codes:
            raise CommitError("At least one code is required per debt", details={"line": i})
        for code in line.assigned_codes:
            if code.lower() in seen:
                raise CommitError("Duplicate codes detected", details={"line": i, "codes": [code]})
            seen.add(code.lower())

        customer_name = (meta.get("customer_name") or "").strip()
        if not customer_name:
            raise CommitError("customer_name is required", details={"line": i})
        owed = _to_cents(meta.get("owed_cents"), "owed_cents", required=True)
        deposited = _to_cents(meta.get("deposited_cents"), "deposited_cents", required=False)

        try:
            codes_str, tags_str = encode_pairs(line.codes, line.tags, repo.delimiter)
        except CodecError as exc:
            raise CommitError(str(exc), details={"line": i, **exc.details}) from exc

        rows.append(DebtEntry(
            store_id=store_id,
            product_id=line.product_id,
            customer_name=customer_name,
            phone_number=(meta.get("phone_number") or None),
            supplier=(meta.get("supplier") or None),
            quantity=line.quantity,
            owed_cents=owed,
            deposited_cents=deposited,
            remaining_balance_cents=owed - deposited,
            device_codes=codes_str,
            device_tags=tags_str,
            date=_entry_date(meta.get("date")),
        ))

    with unit_of_work("commit_debts"):
        db.session.add_all(rows)

    logger.info("Saved %d debt(s) in store %s", len(rows), store_id)
    return rows


def update_debt(debt_id: int, fields: dict, *, repo=None) -> DebtEntry:
    """
    Edit a committed debt in place.

    fields may hold any of customer_name, phone_number, supplier, owed_cents,
    deposited_cents, date, codes and tags. The remaining balance is
    recomputed; new codes must belong to the debt's product and must not
    be sold. Codes without tags keep the tags already stored for them.
    """
    repo = repo or get_repository()
    unknown = set(fields) - set(DEBT_TEXT_FIELDS) - {"owed_cents", "deposited_cents", "date", "codes", "tags"}
    if unknown:
        raise CommitError("Unknown debt fields", details={"fields": sorted(unknown)})
    if "tags" in fields and "codes" not in fields:
        raise CommitError("tags can only be changed together with codes")

    debt = db.session.get(DebtEntry, debt_id)
    if debt is None:
        raise DebtNotFound(f"Debt {debt_id} not found")

    changes: dict = {}
    for name, max_length in DEBT_TEXT_FIELDS.items():
        if name not in fields:
            continue
        value = (fields[name] or "").strip()
        if name == "customer_name" and not value:
            raise CommitError("customer_name is required", details={"field": name})
        if len(value) > max_length:
            raise CommitError(f"{name} must be at most {max_length} characters", details={"field": name})
        changes[name] = value or None

    owed = debt.owed_cents
    deposited = debt.deposited_cents
    if "owed_cents" in fields:
        owed = _to_cents(fields["owed_cents"], "owed_cents", required=True)
    if "deposited_cents" in fields:
        deposited = _to_cents(fields["deposited_cents"], "deposited_cents", required=False)
    changes["owed_cents"] = owed
    changes["deposited_cents"] = deposited
    changes["remaining_balance_cents"] = owed - deposited

    if "date" in fields:
        changes["date"] = _entry_date(fields["date"])

    if "codes" in fields:
        cleaned = [(c or "").strip() for c in fields["codes"] or []]
        assigned = [c for c in cleaned if c]
        if not assigned:
            raise CommitError("At least one code is required per debt")
        if len({c.lower() for c in assigned}) != len(assigned):
            raise CommitError("Duplicate codes detected")

        old_codes, old_tags = decode_pairs(debt.device_codes, debt.device_tags, repo.delimiter)
        known = {c.lower() for c in old_codes}
        check_code_ownership(repo, debt.store_id, debt.product_id, [c for c in assigned if c.lower() not in known])
        sold = repo.codes_sold_among(debt.store_id, assigned)
        if sold:
            raise CommitError("Codes already sold", details={"codes": sorted(sold)})

        if fields.get("tags") is None:
            previous = {c.lower(): t for c, t in zip(old_codes, old_tags)}
            tags = [previous.get(c.lower(), "") for c in cleaned]
        else:
            tags = list(fields["tags"])
        try:
            codes_str, tags_str = encode_pairs(cleaned, tags, repo.delimiter)
        except CodecError as exc:
            raise CommitError(str(exc), details=exc.details) from exc
        changes["device_codes"] = codes_str
        changes["device_tags"] = tags_str
        changes["quantity"] = len(assigned)

    with unit_of_work("update_debt"):
        for name, value in changes.items():
            setattr(debt, name, value)

    logger.info("Updated debt %s (remaining %d)", debt_id, debt.remaining_balance_cents)
    return debt


def list_debts(store_id: int, *, outstanding_only: bool = False) -> list[DebtEntry]:
    q = db.session.query(DebtEntry).filter(DebtEntry.store_id == store_id)
    if outstanding_only:
        q = q.filter(DebtEntry.remaining_balance_cents > 0)
    return q.order_by(DebtEntry.date.desc(), DebtEntry.id.desc()).all()


def delete_debt(debt_id: int) -> None:
    debt = db.session.get(DebtEntry, debt_id)
    if debt is None:
        raise DebtNotFound(f"Debt {debt_id} not found")
    with unit_of_work("delete_debt"):
        db.session.delete(debt)
    logger.info("Deleted debt %s", debt_id)
