# Overview: Narrow persistence collaborator for products, sold units, committed lines and inventory counters.

"""
Persistence collaborator

Everything the scan/reconcile core needs from the database goes through
SqlStockRepository. Reads are wrapped so a backend error surfaces as
PersistenceFailure; writes only flush, the caller owns the commit through
unit_of_work().

Code lists are stored delimited (see stockscan.codec). Lookups prefilter in
SQL with a case-insensitive substring match and then compare whole elements
in Python, so "A1" never matches a row holding only "A10".
"""

from __future__ import annotations

import functools
import logging
from contextlib import contextmanager
from typing import Iterable

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..codec import DEFAULT_DELIMITER, decode_list
from ..extensions import db
from ..models import InventoryRecord, Product, SaleLine
from ..time_utils import utcnow


logger = logging.getLogger(__name__)

# Max number of LIKE clauses per sold-code query
SOLD_QUERY_CHUNK = 50


class PersistenceFailure(Exception):
    """Network/backend error on a read or write."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _guard(operation: str):
    """Translate SQLAlchemy errors raised by a read into PersistenceFailure."""
    def decorator(func_):
        @functools.wraps(func_)
        def wrapper(*args, **kwargs):
            try:
                return func_(*args, **kwargs)
            except SQLAlchemyError as exc:
                db.session.rollback()
                raise PersistenceFailure(
                    f"{operation} failed",
                    details={"operation": operation, "error": str(exc)},
                ) from exc
        return wrapper
    return decorator


@contextmanager
def unit_of_work(operation: str = "write"):
    """
    Commit on success, roll back on any failure.

    SQLAlchemy errors other than optimistic-lock conflicts become
    PersistenceFailure; conflicts propagate unchanged so run_with_retry
    can retry them.
    """
    try:
        yield db.session
        db.session.commit()
    except (OperationalError, StaleDataError):
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceFailure(
            f"{operation} failed",
            details={"operation": operation, "error": str(exc)},
        ) from exc
    except Exception:
        db.session.rollback()
        raise


def _contains_code(raw: str | None, code: str, delimiter: str) -> bool:
    needle = code.strip().lower()
    return any(item.lower() == needle for item in decode_list(raw, delimiter))


class SqlStockRepository:
    """SQLAlchemy-backed implementation of the persistence collaborator."""

    def __init__(self, delimiter: str = DEFAULT_DELIMITER):
        self.delimiter = delimiter

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    @_guard("list_products")
    def list_products(self, store_id: int) -> list[Product]:
        return (
            db.session.query(Product)
            .filter(Product.store_id == store_id)
            .order_by(Product.name, Product.id)
            .all()
        )

    @_guard("get_product")
    def get_product(self, product_id: int) -> Product | None:
        return db.session.get(Product, product_id)

    @_guard("find_product_by_code")
    def find_product_by_code(self, store_id: int, code: str) -> Product | None:
        """Case-insensitive exact match of code against each product's code list."""
        code = (code or "").strip()
        if not code:
            return None

        candidates = (
            db.session.query(Product)
            .filter(
                Product.store_id == store_id,
                func.lower(Product.device_codes).contains(code.lower(), autoescape=True),
            )
            .order_by(Product.id)
            .all()
        )
        matches = [p for p in candidates if _contains_code(p.device_codes, code, self.delimiter)]
        if len(matches) > 1:
            logger.warning(
                "Code %r is listed on %d products in store %s; using product %s",
                code, len(matches), store_id, matches[0].id,
            )
        return matches[0] if matches else None

    # ------------------------------------------------------------------
    # Sold units
    # ------------------------------------------------------------------

    def _sale_lines_mentioning(self, store_id: int, codes: list[str], exclude_line_id: int | None):
        clauses = [
            func.lower(SaleLine.device_codes).contains(code.lower(), autoescape=True)
            for code in codes
        ]
        q = db.session.query(SaleLine).filter(SaleLine.store_id == store_id, or_(*clauses))
        if exclude_line_id is not None:
            q = q.filter(SaleLine.id != exclude_line_id)
        return q.all()

    @_guard("codes_sold_among")
    def codes_sold_among(
        self,
        store_id: int,
        codes: Iterable[str],
        *,
        exclude_line_id: int | None = None,
    ) -> set[str]:
        """
        Return the subset of codes (caller's spelling) that appear in a
        committed sale line of the store.
        """
        wanted = {}
        for code in codes:
            code = (code or "").strip()
            if code:
                wanted.setdefault(code.lower(), code)
        if not wanted:
            return set()

        sold: set[str] = set()
        keys = list(wanted.keys())
        for start in range(0, len(keys), SOLD_QUERY_CHUNK):
            chunk = keys[start:start + SOLD_QUERY_CHUNK]
            for line in self._sale_lines_mentioning(store_id, chunk, exclude_line_id):
                for item in decode_list(line.device_codes, self.delimiter):
                    key = item.lower()
                    if key in wanted:
                        sold.add(wanted[key])
        return sold

    @_guard("sale_lines_with_code")
    def sale_lines_with_code(self, store_id: int, code: str) -> list[SaleLine]:
        code = (code or "").strip()
        if not code:
            return []
        lines = self._sale_lines_mentioning(store_id, [code.lower()], None)
        return [line for line in lines if _contains_code(line.device_codes, code, self.delimiter)]

    # ------------------------------------------------------------------
    # Committed lines
    # ------------------------------------------------------------------

    def insert_committed_lines(self, lines: list) -> list[int]:
        """Add all lines as one batch; ids are assigned on flush."""
        db.session.add_all(lines)
        db.session.flush()
        return [line.id for line in lines]

    @_guard("get_committed_line")
    def get_committed_line(self, line_id: int) -> SaleLine | None:
        return db.session.get(SaleLine, line_id)

    def update_committed_line(self, line_id: int, fields: dict) -> SaleLine:
        line = db.session.get(SaleLine, line_id)
        if line is None:
            raise LookupError(f"Sale line {line_id} not found")
        for key, value in fields.items():
            setattr(line, key, value)
        db.session.flush()
        return line

    def delete_committed_line(self, line_id: int) -> None:
        line = db.session.get(SaleLine, line_id)
        if line is None:
            raise LookupError(f"Sale line {line_id} not found")
        db.session.delete(line)
        db.session.flush()

    # ------------------------------------------------------------------
    # Inventory counters
    # ------------------------------------------------------------------

    @_guard("get_inventory_record")
    def get_inventory_record(self, product_id: int, store_id: int) -> InventoryRecord | None:
        return (
            db.session.query(InventoryRecord)
            .filter_by(product_id=product_id, store_id=store_id)
            .first()
        )

    @_guard("list_inventory")
    def list_inventory(self, store_id: int) -> list[InventoryRecord]:
        return (
            db.session.query(InventoryRecord)
            .filter_by(store_id=store_id)
            .order_by(InventoryRecord.product_id)
            .all()
        )

    def update_available_qty(
        self,
        product_id: int,
        store_id: int,
        new_qty: int,
        *,
        sold_delta: int = 0,
    ) -> InventoryRecord:
        """
        Write a new available_qty computed by the caller from a prior read.

        The record is versioned, so if another writer committed in between
        the flush raises StaleDataError instead of silently losing an update.
        """
        record = (
            db.session.query(InventoryRecord)
            .filter_by(product_id=product_id, store_id=store_id)
            .first()
        )
        if record is None:
            raise LookupError(f"No inventory record for product {product_id} in store {store_id}")

        record.available_qty = new_qty
        if sold_delta > 0:
            record.quantity_sold = (record.quantity_sold or 0) + sold_delta
        record.last_updated = utcnow()
        db.session.flush()
        return record

    def upsert_inventory_record(
        self,
        product_id: int,
        store_id: int,
        available_qty: int,
        quantity_sold: int,
    ) -> InventoryRecord:
        """Create or overwrite the (product, store) record; never creates a second row."""
        record = (
            db.session.query(InventoryRecord)
            .filter_by(product_id=product_id, store_id=store_id)
            .first()
        )
        if record is None:
            record = InventoryRecord(product_id=product_id, store_id=store_id)
            db.session.add(record)

        record.available_qty = available_qty
        record.quantity_sold = quantity_sold
        record.last_updated = utcnow()
        db.session.flush()
        return record


def get_repository() -> SqlStockRepository:
    """Repository configured from the current app (delimiter)."""
    return SqlStockRepository(current_app.config.get("CODE_DELIMITER", DEFAULT_DELIMITER))
