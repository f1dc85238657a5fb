# Overview: Scanning session; wires input arbitration, resolution, line assignment, quantity sync and commit.

"""
ScanSession

One session owns one draft transaction and one input arbiter. Every
accepted scan runs the same pipeline:

    ScanEvent -> resolve -> apply_resolution -> quantity sync
              -> sold-unit refresh for the bound product -> low-stock check

Ordering:
- Events are processed strictly in arrival order. An event that arrives while
  another is being processed is queued and handled right after it.
- Once the session is closed, queued and late events are discarded without
  touching the draft.

Kinds:
- "sale":    commit goes through the stock ledger (inventory is decremented).
- "debt":    commit writes DebtEntry rows; inventory is untouched.
- "catalog": edits the unit codes of one product; unknown codes are added.

Every accepted or rejected scan appends a Notice (level, message) that the
client shows as a toast.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Callable, Sequence

from ..scanning import (
    CameraError,
    CameraNotFound,
    CameraPermissionDenied,
    InputArbiter,
    QueuedFrameSource,
    ScanEvent,
    ScanSource,
)
from . import draft as engine
from .catalog_service import save_codes
from .debt_service import commit_debts
from .draft import DraftError, DraftTransaction
from .persistence import PersistenceFailure, get_repository
from .product_index import ProductIndex, ProductRef
from .quantity import clear_quantity_override, set_quantity, sync_all, sync_line
from .resolver import MODE_CATALOG, MODE_TRANSACTION, Rejected, resolve
from .sold_cache import SoldUnitCache
from .stock_ledger import commit_sale


logger = logging.getLogger(__name__)

KIND_SALE = "sale"
KIND_DEBT = "debt"
KIND_CATALOG = "catalog"
KINDS = (KIND_SALE, KIND_DEBT, KIND_CATALOG)

CAMERA_ERRORS = {
    "permission_denied": CameraPermissionDenied,
    "not_found": CameraNotFound,
}


class SessionError(Exception):
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class SessionClosed(SessionError):
    pass


class SessionNotFound(SessionError):
    pass


@dataclass(frozen=True)
class Notice:
    level: str
    message: str
    code: str | None = None
    reason: str | None = None

    def to_dict(self) -> dict:
        return {"level": self.level, "message": self.message, "code": self.code, "reason": self.reason}


class ScanSession:
    def __init__(
        self,
        store_id: int,
        *,
        kind: str = KIND_SALE,
        mode: ScanSource | str = ScanSource.MANUAL,
        editing_product_id: int | None = None,
        repo=None,
        key_gap_ms: int = 50,
        camera_max_attempts: int = 5,
        camera_backoff_seconds: float = 0.2,
        low_stock_threshold: int = 6,
        camera_factory: Callable = QueuedFrameSource,
        sleep: Callable[[float], None] = time.sleep,
        session_id: str | None = None,
    ):
        if kind not in KINDS:
            raise SessionError(f"Unknown session kind: {kind!r}", details={"kinds": list(KINDS)})

        self.id = session_id or uuid.uuid4().hex
        self.store_id = store_id
        self.kind = kind
        self.repo = repo or get_repository()
        self.low_stock_threshold = low_stock_threshold
        self.editing_product_id = editing_product_id

        self.notices: list[Notice] = []
        self.tones = 0
        self.closed = False
        self.last_commit: dict | None = None
        self.last_active = time.monotonic()

        self._queue: deque[ScanEvent] = deque()
        self._processing = False
        self._queue_lock = threading.Lock()
        self._state_lock = threading.RLock()

        self.sold_cache = SoldUnitCache(self.repo, store_id, on_warning=self._warn)
        self.index = ProductIndex(
            ProductRef.from_model(p, self.repo.delimiter) for p in self.repo.list_products(store_id)
        )

        if kind == KIND_CATALOG:
            product = self.index.get(editing_product_id)
            if product is None:
                raise SessionError("Catalog sessions need an existing product", details={"product_id": editing_product_id})
            self.draft = engine.draft_for_product(product)
        else:
            self.draft = engine.new_draft()

        self.arbiter = InputArbiter(
            self._enqueue,
            mode=mode,
            key_gap_ms=key_gap_ms,
            camera_factory=camera_factory,
            camera_max_attempts=camera_max_attempts,
            camera_backoff_seconds=camera_backoff_seconds,
            sleep=sleep,
            on_tone=self._tone,
        )
        self._report_camera_error()

        logger.debug("Opened %s session %s for store %s", kind, self.id, store_id)

    # ------------------------------------------------------------------
    # Notices
    # ------------------------------------------------------------------

    def _notice(self, level: str, message: str, **kwargs) -> None:
        self.notices.append(Notice(level, message, **kwargs))

    def _warn(self, message: str) -> None:
        self._notice("warning", message)

    def _tone(self, _text: str) -> None:
        self.tones += 1

    def _report_camera_error(self) -> None:
        error = self.arbiter.last_error
        if error is not None:
            self._notice("error", f"{error} Switched to manual input.")

    # ------------------------------------------------------------------
    # Event pipeline
    # ------------------------------------------------------------------

    @property
    def mode(self) -> ScanSource | None:
        return self.arbiter.mode

    @property
    def resolver_mode(self) -> str:
        return MODE_CATALOG if self.kind == KIND_CATALOG else MODE_TRANSACTION

    def _enqueue(self, event: ScanEvent) -> None:
        with self._queue_lock:
            if self.closed:
                return
            self._queue.append(event)
            if self._processing:
                return
            self._processing = True

        try:
            while True:
                with self._queue_lock:
                    if self.closed or not self._queue:
                        self._queue.clear()
                        self._processing = False
                        return
                    event = self._queue.popleft()
                self._process(event)
        except Exception:
            with self._queue_lock:
                self._processing = False
            raise

    def _lookup_product(self, code: str) -> ProductRef | None:
        """
        Owner of code, read from the database so catalog changes made after
        the session opened are seen. The snapshot index answers only when
        the database cannot.
        """
        cached = self.index.find_by_code(code)
        try:
            model = self.repo.find_product_by_code(self.store_id, code)
            moved = cached is not None and (model is None or model.id != cached.id)
            previous = self.repo.get_product(cached.id) if moved and cached.id is not None else None
        except PersistenceFailure as exc:
            logger.warning("Product lookup for %r failed: %s", code, exc)
            self._warn("Product lookup failed; catalog may be out of date")
            return cached

        if moved:
            logger.debug("Code %r no longer belongs to product %s", code, cached.id)
            if previous is None:
                self.index.discard(cached.id)
            else:
                self.index.add(ProductRef.from_model(previous, self.repo.delimiter))

        if model is None:
            return None
        product = ProductRef.from_model(model, self.repo.delimiter)
        self.index.add(product)
        return product

    def _process(self, event: ScanEvent) -> None:
        with self._state_lock:
            if self.closed or self.draft.status != engine.STATUS_DRAFT:
                return

            code = (event.code or "").strip()
            if code:
                self._lookup_product(code)

            decision = resolve(
                event,
                self.draft,
                self.index,
                self.sold_cache,
                mode=self.resolver_mode,
                editing_product_id=self.editing_product_id,
            )
            if isinstance(decision, Rejected):
                logger.debug("Rejected %r from %s: %s", code, event.source.value, decision.reason.value)
                self._notice("error", decision.message, code=code or None, reason=decision.reason.value)
                return

            self.draft = sync_all(engine.apply_resolution(self.draft, decision))
            self._notice("success", f'Code "{code}" added', code=code)

            product = getattr(decision, "product", None)
            if product is not None:
                self.sold_cache.check_sold(product.codes, product.id)
                self._check_low_stock(product)

    def _check_low_stock(self, product: ProductRef) -> None:
        if self.kind == KIND_CATALOG or product.id is None:
            return
        try:
            record = self.repo.get_inventory_record(product.id, self.store_id)
        except PersistenceFailure as exc:
            logger.warning("Inventory lookup for product %s failed: %s", product.id, exc)
            return
        available = record.available_qty if record else 0
        if available < self.low_stock_threshold:
            logger.warning("Low stock for %s: %d unit(s) available", product.name, available)
            self._notice("warning", f"Low stock: {product.name} has only {available} unit(s) left")

    # ------------------------------------------------------------------
    # Input channels
    # ------------------------------------------------------------------

    def _require_open(self) -> None:
        if self.closed:
            raise SessionClosed("Scan session is closed", details={"session_id": self.id})

    def submit_manual(self, text: str) -> bool:
        self._require_open()
        return self.arbiter.submit_manual(text)

    def feed_keys(self, keys: Sequence[tuple[str, float]]) -> int:
        """Feed (key, at_ms) pairs; returns the number of codes emitted."""
        self._require_open()
        return sum(1 for key, at_ms in keys if self.arbiter.feed_key(key, at_ms))

    def push_camera(self, codes: Sequence[str]) -> int:
        """Queue codes decoded by the client camera and deliver them."""
        self._require_open()
        source = self.arbiter.camera_source
        if source is None:
            return 0
        for code in codes:
            source.push(code)
        return self.arbiter.pump_camera()

    def report_camera_error(self, kind: str, message: str | None = None) -> ScanSource:
        self._require_open()
        cls = CAMERA_ERRORS.get(kind, CameraError)
        self.arbiter.fail_camera(cls(message or "Camera unavailable."))
        self._report_camera_error()
        return self.arbiter.mode

    def switch_mode(self, mode: ScanSource | str) -> ScanSource:
        self._require_open()
        result = self.arbiter.switch_mode(mode)
        self._report_camera_error()
        return result

    # ------------------------------------------------------------------
    # Draft editing
    # ------------------------------------------------------------------

    def _edit(self, func, *args) -> DraftTransaction:
        self._require_open()
        with self._state_lock:
            self.draft = func(self.draft, *args)
            return self.draft

    def add_line(self) -> DraftTransaction:
        return self._edit(engine.add_line)

    def remove_line(self, line_index: int) -> DraftTransaction:
        return self._edit(lambda d: sync_all(engine.remove_line(d, line_index)))

    def add_code_slot(self, line_index: int) -> DraftTransaction:
        return self._edit(engine.add_code_slot, line_index)

    def remove_code_slot(self, line_index: int, slot_index: int) -> DraftTransaction:
        return self._edit(lambda d: sync_line(engine.remove_code_slot(d, line_index, slot_index), line_index))

    def set_tag(self, line_index: int, slot_index: int, tag: str) -> DraftTransaction:
        return self._edit(engine.set_tag, line_index, slot_index, tag)

    def set_quantity(self, line_index: int, quantity: int) -> DraftTransaction:
        return self._edit(set_quantity, line_index, quantity)

    def clear_quantity_override(self, line_index: int) -> DraftTransaction:
        return self._edit(clear_quantity_override, line_index)

    def set_unit_price(self, line_index: int, unit_price_cents: int) -> DraftTransaction:
        if unit_price_cents is None or unit_price_cents <= 0:
            raise DraftError("Unit price must be greater than zero")
        return self._edit(engine.set_unit_price, line_index, unit_price_cents)

    def bind_product(self, line_index: int, product_id: int) -> DraftTransaction:
        product = self.index.get(product_id)
        if product is None:
            model = self.repo.get_product(product_id)
            if model is None or model.store_id != self.store_id:
                raise DraftError("Product not found", details={"product_id": product_id})
            product = ProductRef.from_model(model, self.repo.delimiter)
            self.index.add(product)

        draft = self._edit(lambda d: sync_line(engine.bind_product(d, line_index, product), line_index))
        self._check_low_stock(product)
        return draft

    def move_cursor(self, line_index: int, slot_index: int = 0) -> DraftTransaction:
        return self._edit(engine.move_cursor, line_index, slot_index)

    def new_transaction(self) -> DraftTransaction:
        """Start over with a fresh draft (after a commit or to discard)."""
        self._require_open()
        with self._state_lock:
            if self.kind == KIND_CATALOG:
                model = self.repo.get_product(self.editing_product_id)
                if model is None:
                    raise SessionError("Product not found", details={"product_id": self.editing_product_id})
                product = ProductRef.from_model(model, self.repo.delimiter)
                self.index.add(product)
                self.draft = engine.draft_for_product(product)
            else:
                self.draft = engine.new_draft()
            return self.draft

    # ------------------------------------------------------------------
    # Commit / close
    # ------------------------------------------------------------------

    def commit(self, *, payment_method: str | None = None, entries: Sequence[dict] | None = None) -> dict:
        self._require_open()
        with self._state_lock:
            if self.draft.status != engine.STATUS_DRAFT:
                raise DraftError(f"Cannot commit a {self.draft.status} transaction")

            if self.kind == KIND_SALE:
                group, rows = commit_sale(self.store_id, self.draft, payment_method, repo=self.repo)
                self.sold_cache.mark_sold(code for line in self.draft.lines for code in line.assigned_codes)
                result = {"sale_group": group.to_dict(), "lines": [row.to_dict() for row in rows]}
                message = f"Sale saved ({len(rows)} line(s))"
            elif self.kind == KIND_DEBT:
                rows = commit_debts(self.store_id, self.draft, entries or [], repo=self.repo)
                result = {"debts": [row.to_dict() for row in rows]}
                message = f"{len(rows)} debt(s) saved"
            else:
                line = self.draft.lines[0]
                product, added, removed = save_codes(
                    self.editing_product_id, list(line.codes), list(line.tags), repo=self.repo,
                )
                self.index.add(ProductRef.from_model(product, self.repo.delimiter))
                result = {"product": product.to_dict(), "added": added, "removed": removed}
                message = "Product codes saved"

            self.draft = engine.mark_committed(self.draft)
            self.last_commit = result
            self._notice("success", message)
            return result

    def close(self) -> None:
        with self._queue_lock:
            if self.closed:
                return
            self.closed = True
            self._queue.clear()
        self.arbiter.close()
        logger.debug("Closed session %s", self.id)

    def __enter__(self) -> "ScanSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def to_dict(self) -> dict:
        error = self.arbiter.last_error
        return {
            "id": self.id,
            "store_id": self.store_id,
            "kind": self.kind,
            "mode": self.mode.value if self.mode else None,
            "closed": self.closed,
            "editing_product_id": self.editing_product_id,
            "draft": self.draft.to_dict(),
            "available_codes": {
                str(pid): codes for pid, codes in self.sold_cache.available.items() if pid is not None
            },
            "sold_cache_unavailable": self.sold_cache.unavailable,
            "camera_error": str(error) if error else None,
            "tones": self.tones,
            "notices": [n.to_dict() for n in self.notices],
            "last_commit": self.last_commit,
        }


class SessionRegistry:
    """
    Open sessions by id; kept on app.extensions["scan_sessions"].

    A session not touched for ttl_seconds is closed and evicted the next
    time the registry is used. ttl_seconds=None keeps sessions until closed.
    """

    def __init__(self, ttl_seconds: float | None = None, *, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: dict[str, ScanSession] = {}
        self._lock = threading.Lock()

    def _evict_idle(self) -> None:
        if not self.ttl_seconds:
            return
        cutoff = self._clock() - self.ttl_seconds
        with self._lock:
            idle = [s for s in self._sessions.values() if s.last_active < cutoff]
            for session in idle:
                del self._sessions[session.id]
        for session in idle:
            logger.info("Evicting scan session %s after %ss idle", session.id, self.ttl_seconds)
            session.close()

    def add(self, session: ScanSession) -> ScanSession:
        self._evict_idle()
        session.last_active = self._clock()
        with self._lock:
            self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> ScanSession:
        self._evict_idle()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                session.last_active = self._clock()
        if session is None:
            raise SessionNotFound("Scan session not found", details={"session_id": session_id})
        return session

    def close(self, session_id: str) -> ScanSession:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFound("Scan session not found", details={"session_id": session_id})
        session.close()
        return session

    def forget_sold(self, store_id: int, codes) -> None:
        """Drop cached sold answers for codes released by a deleted sale line."""
        codes = list(codes)
        with self._lock:
            sessions = [s for s in self._sessions.values() if s.store_id == store_id]
        for session in sessions:
            session.sold_cache.forget(codes)

    def close_all(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.close()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
