# Overview: Line Assignment Engine; immutable draft transaction state and pure transitions.

"""
Line Assignment Engine

The draft transaction is an immutable value (DraftTransaction holding a tuple
of DraftLine). Every operation here takes a draft and returns a new one; the
session swaps its reference. No I/O happens here: quantity sync
(services.quantity) and sold-cache refresh are follow-up steps run by the
caller.

Invariants kept by these functions:
- len(line.codes) == len(line.tags) for every line.
- A line touched by apply_resolution ends with exactly one trailing empty slot.
- At least one line always exists.
- Only DRAFT transactions can be restructured.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from .product_index import ProductRef
from .resolver import (
    AddCatalogCode,
    AssignToCurrentLine,
    AssignToExistingLine,
    CreateNewLine,
    Decision,
    Rejected,
)


STATUS_DRAFT = "DRAFT"
STATUS_COMMITTED = "COMMITTED"
STATUS_DELETED = "DELETED"


class DraftError(Exception):
    """Raised for invalid structural edits (bad index, non-draft state)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass(frozen=True)
class DraftLine:
    product_id: int | None = None
    product_name: str | None = None
    quantity: int = 1
    unit_price_cents: int | None = None
    codes: tuple[str, ...] = ("",)
    tags: tuple[str, ...] = ("",)
    quantity_manually_set: bool = False
    price_manually_set: bool = False

    @property
    def assigned_codes(self) -> tuple[str, ...]:
        return tuple(c.strip() for c in self.codes if c and c.strip())

    @property
    def is_bound(self) -> bool:
        return self.product_id is not None or bool(self.product_name)

    @property
    def is_empty(self) -> bool:
        return not self.is_bound or not self.assigned_codes

    def holds_code(self, code: str) -> bool:
        needle = code.strip().lower()
        return any(c.lower() == needle for c in self.assigned_codes)

    def targets(self, product: ProductRef) -> bool:
        """
        Does this line already sell `product`?

        Id comparison once both sides have an id; name comparison only for
        lines bound before an id was known.
        """
        if self.product_id is not None and product.id is not None:
            return self.product_id == product.id
        return bool(self.product_name) and self.product_name == product.name

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "codes": list(self.codes),
            "tags": list(self.tags),
            "quantity_manually_set": self.quantity_manually_set,
            "price_manually_set": self.price_manually_set,
        }


@dataclass(frozen=True)
class Cursor:
    line_index: int = 0
    slot_index: int = 0


@dataclass(frozen=True)
class DraftTransaction:
    lines: tuple[DraftLine, ...] = field(default_factory=lambda: (DraftLine(),))
    cursor: Cursor = field(default_factory=Cursor)
    status: str = STATUS_DRAFT

    @property
    def current_line(self) -> DraftLine:
        return self.lines[self.cursor.line_index]

    def locate_code(self, code: str) -> int | None:
        """Index of the line holding code (case-insensitive), or None."""
        for i, line in enumerate(self.lines):
            if line.holds_code(code):
                return i
        return None

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "cursor": {"line_index": self.cursor.line_index, "slot_index": self.cursor.slot_index},
            "lines": [line.to_dict() for line in self.lines],
        }


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------

def _require_draft(draft: DraftTransaction) -> None:
    if draft.status != STATUS_DRAFT:
        raise DraftError(f"Cannot restructure a {draft.status} transaction")


def _check_line(draft: DraftTransaction, line_index: int) -> DraftLine:
    if not 0 <= line_index < len(draft.lines):
        raise DraftError("Line index out of range", details={"line_index": line_index})
    return draft.lines[line_index]


def _check_slot(line: DraftLine, slot_index: int) -> None:
    if not 0 <= slot_index < len(line.codes):
        raise DraftError("Slot index out of range", details={"slot_index": slot_index})


def _replace_line(draft: DraftTransaction, line_index: int, line: DraftLine, **changes) -> DraftTransaction:
    lines = list(draft.lines)
    lines[line_index] = line
    return replace(draft, lines=tuple(lines), **changes)


def _with_trailing_slot(line: DraftLine) -> DraftLine:
    if line.codes and not line.codes[-1].strip():
        return line
    return replace(line, codes=line.codes + ("",), tags=line.tags + ("",))


def _trailing_slot(line: DraftLine) -> int:
    return len(line.codes) - 1


def _place_code(line: DraftLine, code: str, tag: str, preferred_slot: int | None = None) -> DraftLine:
    """Write code into the preferred empty slot, else the first empty slot, else append."""
    codes = list(line.codes)
    tags = list(line.tags)

    slot = None
    if preferred_slot is not None and 0 <= preferred_slot < len(codes) and not codes[preferred_slot].strip():
        slot = preferred_slot
    if slot is None:
        slot = next((i for i, c in enumerate(codes) if not c.strip()), None)

    if slot is None:
        codes.append(code)
        tags.append(tag)
    else:
        codes[slot] = code
        # keep a tag the operator already typed when the catalog has none
        tags[slot] = tag or tags[slot]

    return replace(line, codes=tuple(codes), tags=tuple(tags))


def _bind(line: DraftLine, product: ProductRef) -> DraftLine:
    return replace(
        line,
        product_id=product.id,
        product_name=product.name,
        unit_price_cents=line.unit_price_cents if line.price_manually_set else product.unit_price_cents,
    )


# ----------------------------------------------------------------------
# Public operations
# ----------------------------------------------------------------------

def new_draft() -> DraftTransaction:
    return DraftTransaction()


def draft_for_product(product: ProductRef) -> DraftTransaction:
    """Single-line draft pre-loaded with a product's existing codes (catalog editing)."""
    line = DraftLine(
        product_id=product.id,
        product_name=product.name,
        unit_price_cents=product.unit_price_cents,
        codes=tuple(product.codes),
        tags=tuple(product.tags),
    )
    line = _with_trailing_slot(line)
    return DraftTransaction(lines=(line,), cursor=Cursor(0, _trailing_slot(line)))


def add_line(draft: DraftTransaction) -> DraftTransaction:
    _require_draft(draft)
    lines = draft.lines + (DraftLine(),)
    return replace(draft, lines=lines, cursor=Cursor(len(lines) - 1, 0))


def remove_line(draft: DraftTransaction, line_index: int) -> DraftTransaction:
    """Remove a line; the last remaining line is reset to empty instead."""
    _require_draft(draft)
    _check_line(draft, line_index)

    if len(draft.lines) == 1:
        return replace(draft, lines=(DraftLine(),), cursor=Cursor(0, 0))

    lines = draft.lines[:line_index] + draft.lines[line_index + 1:]
    current = draft.cursor.line_index
    if current == line_index:
        cursor = Cursor(min(line_index, len(lines) - 1), 0)
    elif current > line_index:
        cursor = Cursor(current - 1, draft.cursor.slot_index)
    else:
        cursor = draft.cursor
    return replace(draft, lines=lines, cursor=cursor)


def add_code_slot(draft: DraftTransaction, line_index: int) -> DraftTransaction:
    _require_draft(draft)
    line = _check_line(draft, line_index)
    line = replace(line, codes=line.codes + ("",), tags=line.tags + ("",))
    return _replace_line(draft, line_index, line, cursor=Cursor(line_index, _trailing_slot(line)))


def remove_code_slot(draft: DraftTransaction, line_index: int, slot_index: int) -> DraftTransaction:
    """Remove one code/tag slot; a line left with no slots gets a single empty one."""
    _require_draft(draft)
    line = _check_line(draft, line_index)
    _check_slot(line, slot_index)

    codes = line.codes[:slot_index] + line.codes[slot_index + 1:]
    tags = line.tags[:slot_index] + line.tags[slot_index + 1:]
    if not codes:
        codes, tags = ("",), ("",)
    line = replace(line, codes=codes, tags=tags)

    cursor = draft.cursor
    if cursor.line_index == line_index:
        cursor = Cursor(line_index, min(cursor.slot_index, len(codes) - 1))
    return _replace_line(draft, line_index, line, cursor=cursor)


def set_tag(draft: DraftTransaction, line_index: int, slot_index: int, tag: str) -> DraftTransaction:
    _require_draft(draft)
    line = _check_line(draft, line_index)
    _check_slot(line, slot_index)
    tags = list(line.tags)
    tags[slot_index] = (tag or "").strip()
    return _replace_line(draft, line_index, replace(line, tags=tuple(tags)))


def set_unit_price(draft: DraftTransaction, line_index: int, unit_price_cents: int) -> DraftTransaction:
    """Operator-entered price; later product binds keep it."""
    _require_draft(draft)
    line = _check_line(draft, line_index)
    line = replace(line, unit_price_cents=unit_price_cents, price_manually_set=True)
    return _replace_line(draft, line_index, line)


def bind_product(draft: DraftTransaction, line_index: int, product: ProductRef) -> DraftTransaction:
    """Choose a product for a line by hand; codes of a previous product are cleared."""
    _require_draft(draft)
    line = _check_line(draft, line_index)
    if not line.targets(product):
        line = replace(line, codes=("",), tags=("",))
    line = _bind(line, product)
    return _replace_line(draft, line_index, line, cursor=Cursor(line_index, _trailing_slot(line)))


def move_cursor(draft: DraftTransaction, line_index: int, slot_index: int = 0) -> DraftTransaction:
    line = _check_line(draft, line_index)
    _check_slot(line, slot_index)
    return replace(draft, cursor=Cursor(line_index, slot_index))


def _merge_lines(target: DraftLine, others: list[DraftLine]) -> DraftLine:
    codes = list(target.codes)
    tags = list(target.tags)
    manual = target.quantity_manually_set
    quantity = target.quantity

    for other in others:
        for code, tag in zip(other.codes, other.tags):
            if not code.strip():
                continue
            if any(c.strip().lower() == code.strip().lower() for c in codes):
                continue
            merged = _place_code(replace(target, codes=tuple(codes), tags=tuple(tags)), code.strip(), tag)
            codes, tags = list(merged.codes), list(merged.tags)
        if other.quantity_manually_set:
            manual = True
        quantity += other.quantity

    line = replace(target, codes=tuple(codes), tags=tuple(tags))
    if manual:
        # a manual figure on either side survives the merge as the summed override
        line = replace(line, quantity=quantity, quantity_manually_set=True)
    return line


def apply_resolution(draft: DraftTransaction, decision: Decision) -> DraftTransaction:
    """Apply a resolver decision. Rejections return the draft unchanged."""
    _require_draft(draft)

    if isinstance(decision, Rejected):
        return draft

    if isinstance(decision, AssignToExistingLine):
        index = decision.line_index
        target = _check_line(draft, index)
        merge = sorted(set(decision.merge_indexes) - {index})
        others = [_check_line(draft, i) for i in merge]

        line = _bind(_merge_lines(target, others), decision.product)
        preferred = draft.cursor.slot_index if draft.cursor.line_index == index else None
        line = _with_trailing_slot(_place_code(line, decision.code, decision.tag, preferred))

        lines = []
        new_index = 0
        for i, existing in enumerate(draft.lines):
            if i in merge:
                continue
            if i == index:
                new_index = len(lines)
                lines.append(line)
            else:
                lines.append(existing)
        return replace(draft, lines=tuple(lines), cursor=Cursor(new_index, _trailing_slot(line)))

    if isinstance(decision, AssignToCurrentLine):
        index = draft.cursor.line_index
        line = _bind(draft.current_line, decision.product)
        line = replace(line, codes=(decision.code, ""), tags=(decision.tag, ""))
        return _replace_line(draft, index, line, cursor=Cursor(index, 1))

    if isinstance(decision, CreateNewLine):
        line = _bind(DraftLine(), decision.product)
        line = replace(line, codes=(decision.code, ""), tags=(decision.tag, ""))
        lines = draft.lines + (line,)
        return replace(draft, lines=lines, cursor=Cursor(len(lines) - 1, 1))

    if isinstance(decision, AddCatalogCode):
        index = draft.cursor.line_index
        line = _place_code(draft.current_line, decision.code, decision.tag, draft.cursor.slot_index)
        line = _with_trailing_slot(line)
        return _replace_line(draft, index, line, cursor=Cursor(index, _trailing_slot(line)))

    raise DraftError(f"Unknown decision {decision!r}")


def mark_committed(draft: DraftTransaction) -> DraftTransaction:
    _require_draft(draft)
    return replace(draft, status=STATUS_COMMITTED)
