from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.core.errors import InvalidInputError, InvalidStateError, NotFoundError
from app.db.database import unit_of_work
from app.models import PendingPurchase, PendingPurchaseState, PurchaseReceiptEvent
from app.services.pending_purchases import (
    PendingCandidate,
    PendingPurchaseService,
    match_ingredient,
    normalize_name,
)
from tests.factories import OTHER_TENANT_ID, TENANT_ID, create_ingredient, quantity_of

DAY = date(2026, 3, 14)


def _submit(db, *candidates):
    with unit_of_work(db):
        batch = PendingPurchaseService(db, TENANT_ID).submit(candidates)
    pending = db.scalars(
        select(PendingPurchase).where(PendingPurchase.batch_id == batch["batch_id"]).order_by(PendingPurchase.id)
    ).all()
    ids = [(row.id, row.ingredient_id) for row in pending]
    db.rollback()
    return batch, ids


def _state(db, pending_id):
    db.expire_all()
    state = db.get(PendingPurchase, pending_id).state
    db.rollback()
    return state


def test_approve_one_reject_the_other_then_reapprove_is_invalid(db):
    tomatoes = create_ingredient(db, "Tomatoes", quantity="2")
    basil = create_ingredient(db, "Basil", quantity="1")
    _, [(first, _), (second, _)] = _submit(
        db,
        PendingCandidate("Tomatoes", Decimal("5"), Decimal("1.2"), DAY),
        PendingCandidate("Basil", Decimal("3"), Decimal("0.5"), DAY),
    )

    with unit_of_work(db):
        PendingPurchaseService(db, TENANT_ID).approve(first)
    assert quantity_of(db, tomatoes) == Decimal("7")

    with unit_of_work(db):
        PendingPurchaseService(db, TENANT_ID).reject(second)
    assert quantity_of(db, basil) == Decimal("1")

    with pytest.raises(InvalidStateError):
        with unit_of_work(db):
            PendingPurchaseService(db, TENANT_ID).approve(first)

    assert quantity_of(db, tomatoes) == Decimal("7")
    assert _state(db, first) == PendingPurchaseState.APPROVED
    assert _state(db, second) == PendingPurchaseState.REJECTED


def test_approval_books_a_receipt_without_format_conversion(db):
    beer = create_ingredient(db, "Beer", quantity="0", unit_price="12", units_per_purchase_format="6")
    _, [(pending_id, _)] = _submit(db, PendingCandidate("beer", Decimal("4"), Decimal("2.5"), DAY))

    with unit_of_work(db):
        receipt = PendingPurchaseService(db, TENANT_ID).approve(pending_id)
    receipt_id = receipt.id

    receipt = db.get(PurchaseReceiptEvent, receipt_id)
    assert receipt.pending_purchase_id == pending_id
    assert receipt.order_id is None
    assert receipt.quantity_received == Decimal("4")
    assert receipt.total_cost == Decimal("10")
    assert receipt.received_on == DAY
    assert quantity_of(db, beer) == Decimal("4")


def test_submitting_never_touches_stock(db):
    oil = create_ingredient(db, "Olive Oil", quantity="10")

    batch, rows = _submit(db, PendingCandidate("Olive Oil", Decimal("5"), Decimal("8"), DAY))

    assert batch["count"] == 1
    assert rows[0][1] == oil
    assert quantity_of(db, oil) == Decimal("10")


def test_names_match_ignoring_accents_case_and_partial_words(db):
    cafe = create_ingredient(db, "Café Molido", quantity="0")
    jamon = create_ingredient(db, "Jamón Serrano", quantity="0")
    create_ingredient(db, "Jamón Serrano", quantity="0", tenant_id=OTHER_TENANT_ID)

    _, rows = _submit(
        db,
        PendingCandidate("CAFE MOLIDO", Decimal("1"), Decimal("1"), DAY),
        PendingCandidate("jamon", Decimal("1"), Decimal("1"), DAY),
        PendingCandidate("Mystery Spice", Decimal("1"), Decimal("1"), DAY),
    )

    assert [ingredient_id for _, ingredient_id in rows] == [cafe, jamon, None]


def test_unmatched_line_must_be_assigned_before_approval(db):
    salt = create_ingredient(db, "Salt", quantity="0")
    _, [(pending_id, ingredient_id)] = _submit(db, PendingCandidate("Sel de mer", Decimal("2"), Decimal("1"), DAY))
    assert ingredient_id is None

    with pytest.raises(InvalidInputError):
        with unit_of_work(db):
            PendingPurchaseService(db, TENANT_ID).approve(pending_id)

    with unit_of_work(db):
        PendingPurchaseService(db, TENANT_ID).update_pending(pending_id, ingredient_id=salt, quantity=Decimal("3"))
    with unit_of_work(db):
        PendingPurchaseService(db, TENANT_ID).approve(pending_id)

    assert quantity_of(db, salt) == Decimal("3")


def test_update_rejects_foreign_ingredient_and_empty_changes(db):
    foreign = create_ingredient(db, "Salt", tenant_id=OTHER_TENANT_ID)
    _, [(pending_id, _)] = _submit(db, PendingCandidate("Salt", Decimal("2"), Decimal("1"), DAY))
    service = PendingPurchaseService(db, TENANT_ID)

    with pytest.raises(InvalidInputError):
        with unit_of_work(db):
            service.update_pending(pending_id, ingredient_id=foreign)
    with pytest.raises(InvalidInputError):
        with unit_of_work(db):
            service.update_pending(pending_id)


def test_approve_batch_skips_unmatched_lines(db):
    flour = create_ingredient(db, "Flour", quantity="0")
    sugar = create_ingredient(db, "Sugar", quantity="0")
    batch, rows = _submit(
        db,
        PendingCandidate("Flour", Decimal("10"), Decimal("1"), DAY),
        PendingCandidate("Sugar", Decimal("4"), Decimal("1"), DAY),
        PendingCandidate("Unknown", Decimal("1"), Decimal("1"), DAY),
    )

    with unit_of_work(db):
        outcome = PendingPurchaseService(db, TENANT_ID).approve_batch(batch["batch_id"])

    assert outcome == {"approved": 2, "skipped": 1}
    assert quantity_of(db, flour) == Decimal("10")
    assert quantity_of(db, sugar) == Decimal("4")
    assert _state(db, rows[2][0]) == PendingPurchaseState.PENDING

    with unit_of_work(db):
        again = PendingPurchaseService(db, TENANT_ID).approve_batch(batch["batch_id"])
    assert again == {"approved": 0, "skipped": 1}


def test_approve_batch_without_pending_items_is_not_found(db):
    with pytest.raises(NotFoundError):
        with unit_of_work(db):
            PendingPurchaseService(db, TENANT_ID).approve_batch("no-such-batch")


def test_list_pending_filters_by_state(db):
    create_ingredient(db, "Flour", quantity="0")
    _, [(first, _), (second, _)] = _submit(
        db,
        PendingCandidate("Flour", Decimal("1"), Decimal("1"), DAY),
        PendingCandidate("Flour", Decimal("2"), Decimal("1"), DAY),
    )
    with unit_of_work(db):
        PendingPurchaseService(db, TENANT_ID).reject(first)

    service = PendingPurchaseService(db, TENANT_ID)
    assert [row.id for row in service.list_pending()] == [second]
    assert [row.id for row in service.list_pending(PendingPurchaseState.REJECTED)] == [first]
    assert len(service.list_pending(None)) == 2
    db.rollback()


def test_normalize_name():
    assert normalize_name("  Crème  Fraîche!! ") == "creme fraiche"
    assert normalize_name(None) == ""


def test_match_prefers_exact_over_partial():
    catalog = {"tomate": 1, "tomate cherry": 2}

    assert match_ingredient("Tomate Cherry", catalog) == 2
    assert match_ingredient("tomates", catalog) == 1
    assert match_ingredient("!!!", catalog) is None


def test_archived_ingredient_cannot_be_assigned(db):
    old_salt = create_ingredient(db, "Old Salt", is_active=False)
    service = PendingPurchaseService(db, TENANT_ID)

    with pytest.raises(InvalidInputError):
        with unit_of_work(db):
            service.submit([PendingCandidate("Salt", Decimal("1"), Decimal("1"), DAY, ingredient_id=old_salt)])

    _, [(pending_id, _)] = _submit(db, PendingCandidate("Salt", Decimal("1"), Decimal("1"), DAY))
    with pytest.raises(InvalidInputError):
        with unit_of_work(db):
            service.update_pending(pending_id, ingredient_id=old_salt)

    assert _state(db, pending_id) == PendingPurchaseState.PENDING
