# Overview: Sold-Unit Cache; point-in-time snapshot of codes already in the sales ledger.

"""
Sold-Unit Cache

The committed sale lines are the source of truth for "sold". This cache only
remembers answers fetched for the codes currently relevant (the codes of
products bound in the open session) so the UI can show which units are still
sellable.

- A code seen as sold stays sold for the life of the cache (units do not
  come back unless a sale line is deleted, see forget()).
- A code seen as unsold is re-checked on every is_sold() call, so a sale
  committed by another operator is noticed at scan time.
- Backend errors never block scanning: the cache reports a warning, marks
  itself unavailable and answers from what it already knows.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from .persistence import PersistenceFailure


logger = logging.getLogger(__name__)


class SoldUnitCache:
    def __init__(self, repo, store_id: int, *, on_warning: Callable[[str], None] | None = None):
        self._repo = repo
        self.store_id = store_id
        self._on_warning = on_warning
        self._known: dict[str, bool] = {}
        self.available: dict[int | None, list[str]] = {}
        self._candidates: dict[int | None, list[str]] = {}
        self.unavailable = False
        self.last_error: PersistenceFailure | None = None

    def _mark_unavailable(self, exc: PersistenceFailure) -> None:
        self.unavailable = True
        self.last_error = exc
        logger.warning("Sold-unit lookup failed for store %s: %s", self.store_id, exc)
        if self._on_warning is not None:
            self._on_warning("Failed to check sold units; sold status may be out of date")

    def check_sold(self, codes: Iterable[str], product_id: int | None) -> list[str]:
        """
        Return the codes among `codes` that are not in the sales ledger
        (i.e. currently sellable) and remember them for product_id.
        """
        candidates = []
        for code in codes:
            code = (code or "").strip()
            if code and code not in candidates:
                candidates.append(code)

        self._candidates[product_id] = candidates
        if not candidates:
            self.available[product_id] = []
            return []

        try:
            sold = self._repo.codes_sold_among(self.store_id, candidates)
        except PersistenceFailure as exc:
            self._mark_unavailable(exc)
            self.available[product_id] = []
            return []

        self.unavailable = False
        sold_keys = {code.lower() for code in sold}
        for code in candidates:
            self._known[code.lower()] = code.lower() in sold_keys

        available = [code for code in candidates if code.lower() not in sold_keys]
        self.available[product_id] = available
        return available

    def is_sold(self, code: str) -> bool:
        key = (code or "").strip().lower()
        if not key:
            return False
        if self._known.get(key):
            return True

        try:
            sold = self._repo.codes_sold_among(self.store_id, [code.strip()])
        except PersistenceFailure as exc:
            self._mark_unavailable(exc)
            return False

        self.unavailable = False
        self._known[key] = bool(sold)
        return self._known[key]

    def mark_sold(self, codes: Iterable[str]) -> None:
        """Record codes just committed by this session."""
        sold_keys = set()
        for code in codes:
            key = (code or "").strip().lower()
            if key:
                self._known[key] = True
                sold_keys.add(key)
        for product_id, available in self.available.items():
            self.available[product_id] = [c for c in available if c.lower() not in sold_keys]

    def forget(self, codes: Iterable[str]) -> None:
        """Released codes (their sale line was deleted or edited) are sellable again."""
        released = set()
        for code in codes:
            key = (code or "").strip().lower()
            if key:
                self._known.pop(key, None)
                released.add(key)
        for product_id, candidates in self._candidates.items():
            current = {c.lower() for c in self.available.get(product_id, [])}
            self.available[product_id] = [
                c for c in candidates if c.lower() in current or c.lower() in released
            ]
