from datetime import date

import pytest

from database import MEDICINES_KEY
from models import InsufficientStockError, InvoiceItem, ValidationError


def test_add_assigns_unique_ids_and_persists(system, db):
    first = system.ledger.add("Vitamin C", "3.5", "40", "2026-05-01")
    second = system.ledger.add("Vitamin C", 3.5, 40, date(2026, 5, 1))

    assert first.id != second.id
    assert first.price == 3.5
    assert first.quantity == 40
    assert first.expiry_date == date(2026, 5, 1)
    stored_ids = [r["id"] for r in db.load_collection(MEDICINES_KEY)]
    assert stored_ids[-2:] == [first.id, second.id]


@pytest.mark.parametrize("fields", [
    {"name": "", "price": 1, "quantity": 1, "expiry_date": "2026-01-01"},
    {"name": "   ", "price": 1, "quantity": 1, "expiry_date": "2026-01-01"},
    {"name": "X", "price": None, "quantity": 1, "expiry_date": "2026-01-01"},
    {"name": "X", "price": -0.5, "quantity": 1, "expiry_date": "2026-01-01"},
    {"name": "X", "price": "abc", "quantity": 1, "expiry_date": "2026-01-01"},
    {"name": "X", "price": 1, "quantity": -1, "expiry_date": "2026-01-01"},
    {"name": "X", "price": 1, "quantity": 1.5, "expiry_date": "2026-01-01"},
    {"name": "X", "price": 1, "quantity": None, "expiry_date": "2026-01-01"},
    {"name": "X", "price": 1, "quantity": 1, "expiry_date": "2026-13-01"},
    {"name": "X", "price": 1, "quantity": 1, "expiry_date": "01/02/2026"},
    {"name": "X", "price": 1, "quantity": 1, "expiry_date": ""},
])
def test_add_rejects_malformed_fields(system, fields):
    before = list(system.store.medicines)

    with pytest.raises(ValidationError):
        system.ledger.add(**fields)

    assert system.store.medicines == before


def test_validation_error_is_a_value_error():
    assert issubclass(ValidationError, ValueError)


def test_update_replaces_whole_record(system):
    med = system.ledger.get("1").copy()
    med.name = "Panadol Extra 24 tabs"
    med.price = 17
    med.quantity = 60

    assert system.ledger.update(med) is True

    stored = system.ledger.get("1")
    assert stored.name == "Panadol Extra 24 tabs"
    assert stored.price == 17.0
    assert stored.quantity == 60
    assert stored is not med


def test_update_unknown_id_is_a_no_op(system, make_medicine):
    before = [m.to_record() for m in system.store.medicines]

    assert system.ledger.update(make_medicine(id="missing")) is False
    assert [m.to_record() for m in system.store.medicines] == before


def test_update_validates_before_mutating(system):
    med = system.ledger.get("1").copy()
    med.quantity = -3

    with pytest.raises(ValidationError):
        system.ledger.update(med)
    assert system.ledger.get("1").quantity == 50


def test_remove(system):
    assert system.ledger.remove("3") is True
    assert system.ledger.get("3") is None
    assert system.ledger.remove("3") is False
    assert [m.id for m in system.ledger.list_inventory()] == ["1", "2"]


def test_search_is_case_insensitive_and_can_hide_sold_out(system):
    med = system.ledger.get("2").copy()
    med.quantity = 0
    system.ledger.update(med)

    assert [m.id for m in system.ledger.search("AUG")] == ["2"]
    assert system.ledger.search("aug", in_stock_only=True) == []
    assert len(system.ledger.search()) == 3


def test_apply_sale_decrements_stock(system, db):
    system.ledger.apply_sale([
        InvoiceItem("1", "Panadol Extra", 15.5, 4),
        InvoiceItem("3", "Omeprazole", 22.0, 20),
    ])

    assert system.ledger.get("1").quantity == 46
    assert system.ledger.get("3").quantity == 100
    stored = {r["id"]: r["quantity"] for r in db.load_collection(MEDICINES_KEY)}
    assert stored == {"1": 46, "2": 5, "3": 100}


def test_apply_sale_is_all_or_nothing(system):
    items = [
        InvoiceItem("1", "Panadol Extra", 15.5, 4),
        InvoiceItem("2", "Augmentin 1g", 85.0, 6),
    ]

    with pytest.raises(InsufficientStockError) as exc_info:
        system.ledger.apply_sale(items)

    assert exc_info.value.medicine_id == "2"
    assert exc_info.value.available == 5
    assert system.ledger.get("1").quantity == 50
    assert system.ledger.get("2").quantity == 5


def test_apply_sale_rejects_removed_medicine(system):
    system.ledger.remove("3")

    with pytest.raises(InsufficientStockError):
        system.ledger.apply_sale([InvoiceItem("3", "Omeprazole", 22.0, 1)])


def test_mutations_notify_listeners(system):
    events = []
    unsubscribe = system.store.subscribe(lambda event, payload: events.append(event))

    system.ledger.add("Zinc", 2, 10, "2026-01-01")
    system.ledger.remove("nope")
    unsubscribe()
    system.ledger.remove("1")

    assert events == ["medicines_changed"]


def test_failing_listener_does_not_break_mutation(system):
    def boom(event, payload):
        raise RuntimeError("listener bug")

    system.store.subscribe(boom)

    assert system.ledger.remove("1") is True


def test_returned_medicines_are_detached_copies(system, db):
    system.ledger.get("1").quantity = 0
    system.ledger.list_inventory()[1].quantity = 0
    system.ledger.search("omep")[0].price = 0.0

    assert system.ledger.get("1").quantity == 50
    assert system.ledger.get("2").quantity == 5
    assert system.ledger.get("3").price == 22.0
    assert db.load_collection(MEDICINES_KEY)[0]["quantity"] == 50
