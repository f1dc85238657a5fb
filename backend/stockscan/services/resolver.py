# Overview: Code Resolver; decides what a single scanned code does to the draft transaction.

"""
Code Resolver

Pure function of (scan event, draft, catalog, sold-unit cache) -> decision.
It never mutates anything; services.draft.apply_resolution performs the
structural change.

Order of checks (first hit wins):
1. blank code                               -> Rejected(EMPTY)
2. code already sold                        -> Rejected(ALREADY_SOLD)
3. no product owns the code                 -> Rejected(NOT_FOUND)
4. code already somewhere in the draft      -> Rejected(DUPLICATE_IN_TRANSACTION)
5. a line already targets the owning product -> AssignToExistingLine
   (other lines targeting the same product are merged into it)
6. the current line is empty/unassigned     -> AssignToCurrentLine
7. otherwise                                -> CreateNewLine

Catalog editing replaces 3-7: an unknown code becomes AddCatalogCode on the
product being edited, a code owned by another product is CODE_IN_USE.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Protocol, Union

from .product_index import ProductIndex, ProductRef

if TYPE_CHECKING:
    from ..scanning.events import ScanEvent
    from .draft import DraftTransaction


MODE_TRANSACTION = "transaction"
MODE_CATALOG = "catalog"


class RejectReason(str, Enum):
    EMPTY = "EMPTY"
    ALREADY_SOLD = "ALREADY_SOLD"
    DUPLICATE_IN_TRANSACTION = "DUPLICATE_IN_TRANSACTION"
    NOT_FOUND = "NOT_FOUND"
    CODE_IN_USE = "CODE_IN_USE"


_REJECT_MESSAGES = {
    RejectReason.EMPTY: "Scanned code cannot be empty",
    RejectReason.ALREADY_SOLD: 'Code "{code}" has already been sold',
    RejectReason.DUPLICATE_IN_TRANSACTION: 'Code "{code}" already exists in this transaction',
    RejectReason.NOT_FOUND: 'Code "{code}" not found',
    RejectReason.CODE_IN_USE: 'Code "{code}" belongs to another product',
}


class SoldLookup(Protocol):
    def is_sold(self, code: str) -> bool: ...


@dataclass(frozen=True)
class Rejected:
    reason: RejectReason
    code: str = ""

    @property
    def message(self) -> str:
        return _REJECT_MESSAGES[self.reason].format(code=self.code)


@dataclass(frozen=True)
class AssignToCurrentLine:
    code: str
    tag: str
    product: ProductRef


@dataclass(frozen=True)
class AssignToExistingLine:
    line_index: int
    code: str
    tag: str
    product: ProductRef
    merge_indexes: tuple[int, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class CreateNewLine:
    code: str
    tag: str
    product: ProductRef


@dataclass(frozen=True)
class AddCatalogCode:
    code: str
    tag: str = ""


Decision = Union[Rejected, AssignToCurrentLine, AssignToExistingLine, CreateNewLine, AddCatalogCode]


def _resolve_catalog(code: str, draft: "DraftTransaction", index: ProductIndex, editing_product_id) -> Decision:
    owner = index.find_by_code(code)
    if owner is not None and owner.id != editing_product_id:
        return Rejected(RejectReason.CODE_IN_USE, code)
    if draft.locate_code(code) is not None:
        return Rejected(RejectReason.DUPLICATE_IN_TRANSACTION, code)
    return AddCatalogCode(code, owner.tag_for(code) if owner else "")


def resolve(
    event: "ScanEvent",
    draft: "DraftTransaction",
    index: ProductIndex,
    sold: SoldLookup,
    *,
    mode: str = MODE_TRANSACTION,
    editing_product_id: int | None = None,
) -> Decision:
    """Map one scan event to a decision against the current draft."""
    code = (event.code or "").strip()
    if not code:
        return Rejected(RejectReason.EMPTY)

    if sold.is_sold(code):
        return Rejected(RejectReason.ALREADY_SOLD, code)

    if mode == MODE_CATALOG:
        return _resolve_catalog(code, draft, index, editing_product_id)

    product = index.find_by_code(code)
    if product is None:
        return Rejected(RejectReason.NOT_FOUND, code)

    if draft.locate_code(code) is not None:
        return Rejected(RejectReason.DUPLICATE_IN_TRANSACTION, code)

    tag = product.tag_for(code)

    targets = [i for i, line in enumerate(draft.lines) if line.targets(product)]
    if targets:
        current = draft.cursor.line_index
        primary = current if current in targets else targets[0]
        others = tuple(i for i in targets if i != primary)
        return AssignToExistingLine(primary, code, tag, product, merge_indexes=others)

    if draft.current_line.is_empty:
        return AssignToCurrentLine(code, tag, product)

    return CreateNewLine(code, tag, product)
