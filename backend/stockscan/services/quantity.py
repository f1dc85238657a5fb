# Overview: Quantity Synchronizer; keeps line quantity equal to its assigned-code count.

from __future__ import annotations

from dataclasses import replace

from .draft import DraftError, DraftLine, DraftTransaction, _check_line, _replace_line, _require_draft


def expected_quantity(line: DraftLine) -> int:
    return max(1, len(line.assigned_codes))


def sync(line: DraftLine) -> DraftLine:
    """Recompute quantity from codes unless the operator overrode it."""
    if line.quantity_manually_set:
        return line
    quantity = expected_quantity(line)
    if quantity == line.quantity:
        return line
    return replace(line, quantity=quantity)


def sync_line(draft: DraftTransaction, line_index: int) -> DraftTransaction:
    line = _check_line(draft, line_index)
    synced = sync(line)
    if synced is line:
        return draft
    return _replace_line(draft, line_index, synced)


def sync_all(draft: DraftTransaction) -> DraftTransaction:
    lines = tuple(sync(line) for line in draft.lines)
    if lines == draft.lines:
        return draft
    return replace(draft, lines=lines)


def set_quantity(draft: DraftTransaction, line_index: int, quantity: int) -> DraftTransaction:
    """
    Operator typed a quantity. From now on scanning/removing codes leaves it
    alone until clear_quantity_override().
    """
    _require_draft(draft)
    line = _check_line(draft, line_index)
    if quantity < 1:
        raise DraftError("Quantity must be at least 1", details={"quantity": quantity})
    return _replace_line(draft, line_index, replace(line, quantity=quantity, quantity_manually_set=True))


def clear_quantity_override(draft: DraftTransaction, line_index: int) -> DraftTransaction:
    _require_draft(draft)
    line = _check_line(draft, line_index)
    line = sync(replace(line, quantity_manually_set=False))
    return _replace_line(draft, line_index, line)
