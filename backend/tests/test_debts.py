from datetime import date

import pytest

from stockscan.extensions import db
from stockscan.models import DebtEntry, InventoryRecord, SaleLine
from stockscan.scanning import ScanEvent, ScanSource
from stockscan.services import debt_service, stock_ledger
from stockscan.services import draft as engine
from stockscan.services.debt_service import DebtNotFound
from stockscan.services.product_index import ProductIndex, ProductRef
from stockscan.services.resolver import resolve
from stockscan.services.stock_ledger import CommitError


class NothingSold:
    def is_sold(self, code):
        return False


def debt_draft(products, codes=()):
    """Scan codes into a fresh draft; a product with no codes gets a bound, code-less line."""
    index = ProductIndex(ProductRef.from_model(p) for p in products)
    draft = engine.new_draft()
    for code in codes:
        draft = engine.apply_resolution(draft, resolve(ScanEvent(code, ScanSource.MANUAL), draft, index, NothingSold()))
    if not codes:
        draft = engine.bind_product(draft, 0, ProductRef.from_model(products[0]))
    return draft


def test_commit_debts_one_entry_per_line(repo, store, phone_x, phone_y):
    draft = debt_draft([phone_x, phone_y], ["A1", "A2", "B1"])
    entries = [
        {"customer_name": "Dana", "owed_cents": 90_000_00, "deposited_cents": 10_000_00, "date": "2026-10-01"},
        {"customer_name": "Lee", "phone_number": "555-0100", "owed_cents": 38_000_00},
    ]

    rows = debt_service.commit_debts(store.id, draft, entries, repo=repo)

    assert len(rows) == 2
    first = db.session.get(DebtEntry, rows[0].id)
    assert first.remaining_balance_cents == 80_000_00
    assert first.device_codes == "A1,A2"
    assert first.date == date(2026, 10, 1)
    assert rows[1].deposited_cents == 0
    assert rows[1].phone_number == "555-0100"


def test_debts_do_not_touch_stock(repo, store, phone_x):
    debt_service.commit_debts(
        store.id, debt_draft([phone_x], ["A1"]), [{"customer_name": "Dana", "owed_cents": 1}], repo=repo,
    )
    record = db.session.query(InventoryRecord).filter_by(product_id=phone_x.id).one()
    assert record.available_qty == 10
    assert db.session.query(SaleLine).count() == 0


@pytest.mark.parametrize("entry", [
    {"owed_cents": 100},
    {"customer_name": "Dana"},
    {"customer_name": "Dana", "owed_cents": "ten"},
    {"customer_name": "Dana", "owed_cents": -5},
    {"customer_name": "Dana", "owed_cents": 100, "date": "01/10/2026"},
])
def test_invalid_entry_details(repo, store, phone_x, entry):
    with pytest.raises(CommitError):
        debt_service.commit_debts(store.id, debt_draft([phone_x], ["A1"]), [entry], repo=repo)
    assert db.session.query(DebtEntry).count() == 0


def test_debt_line_needs_a_code(repo, store, phone_x):
    with pytest.raises(CommitError):
        debt_service.commit_debts(
            store.id, debt_draft([phone_x]), [{"customer_name": "Dana", "owed_cents": 1}], repo=repo,
        )


def test_entries_must_match_lines(repo, store, phone_x):
    with pytest.raises(CommitError):
        debt_service.commit_debts(store.id, debt_draft([phone_x], ["A1"]), [], repo=repo)


def test_list_and_delete(repo, store, phone_x, phone_y):
    draft = debt_draft([phone_x, phone_y], ["A1", "B1"])
    rows = debt_service.commit_debts(store.id, draft, [
        {"customer_name": "Paid", "owed_cents": 100, "deposited_cents": 100},
        {"customer_name": "Owing", "owed_cents": 100, "deposited_cents": 40},
    ], repo=repo)

    assert len(debt_service.list_debts(store.id)) == 2
    outstanding = debt_service.list_debts(store.id, outstanding_only=True)
    assert [d.customer_name for d in outstanding] == ["Owing"]

    paid_id = rows[0].id
    debt_service.delete_debt(paid_id)
    assert len(debt_service.list_debts(store.id)) == 1
    with pytest.raises(DebtNotFound):
        debt_service.delete_debt(paid_id)


def test_update_debt_recomputes_balance(repo, store, phone_x):
    rows = debt_service.commit_debts(store.id, debt_draft([phone_x], ["A1", "A2"]), [
        {"customer_name": "Dana", "owed_cents": 90_000_00, "deposited_cents": 10_000_00},
    ], repo=repo)
    debt_id = rows[0].id

    debt = debt_service.update_debt(debt_id, {
        "deposited_cents": 50_000_00,
        "phone_number": " 555-0199 ",
        "date": "2026-10-05",
    }, repo=repo)

    assert debt.remaining_balance_cents == 40_000_00
    assert debt.owed_cents == 90_000_00
    assert debt.phone_number == "555-0199"
    assert debt.date == date(2026, 10, 5)
    assert [d.remaining_balance_cents for d in debt_service.list_debts(store.id, outstanding_only=True)] == [40_000_00]


def test_update_debt_codes_keep_tags(repo, store, phone_x):
    rows = debt_service.commit_debts(store.id, debt_draft([phone_x], ["A1", "A2"]), [
        {"customer_name": "Dana", "owed_cents": 100},
    ], repo=repo)

    debt = debt_service.update_debt(rows[0].id, {"codes": ["A2", "A3"]}, repo=repo)

    stored = debt.to_dict()
    assert stored["codes"] == ["A2", "A3"]
    assert stored["tags"] == ["128GB", ""]
    assert debt.quantity == 2


@pytest.mark.parametrize("fields", [
    {"codes": []},
    {"codes": ["A1", "a1"]},
    {"codes": ["A1", "B1"]},
    {"codes": ["A1,A9"]},
    {"tags": ["64GB"]},
    {"owed_cents": -1},
    {"customer_name": "  "},
    {"colour": "red"},
])
def test_update_debt_rejects_invalid_fields(repo, store, phone_x, phone_y, fields):
    rows = debt_service.commit_debts(store.id, debt_draft([phone_x], ["A1"]), [
        {"customer_name": "Dana", "owed_cents": 100},
    ], repo=repo)
    debt_id = rows[0].id

    with pytest.raises(CommitError):
        debt_service.update_debt(debt_id, fields, repo=repo)

    stored = db.session.get(DebtEntry, debt_id)
    assert stored.device_codes == "A1"
    assert stored.customer_name == "Dana"


def test_update_debt_rejects_sold_codes(repo, store, phone_x):
    rows = debt_service.commit_debts(store.id, debt_draft([phone_x], ["A1"]), [
        {"customer_name": "Dana", "owed_cents": 100},
    ], repo=repo)
    stock_ledger.commit_sale(store.id, debt_draft([phone_x], ["A2"]), "cash", repo=repo)

    with pytest.raises(CommitError) as excinfo:
        debt_service.update_debt(rows[0].id, {"codes": ["A1", "A2"]}, repo=repo)
    assert excinfo.value.details["codes"] == ["A2"]


def test_update_missing_debt(repo):
    with pytest.raises(DebtNotFound):
        debt_service.update_debt(999, {"owed_cents": 1}, repo=repo)
