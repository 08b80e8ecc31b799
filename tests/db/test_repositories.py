from datetime import datetime, timezone

import pytest
from sqlalchemy.orm import Session, sessionmaker

from db import models
from db.repositories import ExpenseRecordRepository, GroupLedgerRepository, SettlementRecordRepository
from domain.errors import ConcurrencyConflict, InvalidInput, InvariantViolation
from domain.expense_record import ExpenseRecord
from domain.ledger import ExpenseShare
from domain.money import Currency
from domain.settlement_record import SettlementRecord, SettlementStatus
from tests.constants import ALICE, BOB, CAROL, DAVE, FLAT, TRIP


def _record(settle_from: str, settle_to: str, amount: int, day: int, **kwargs: object) -> SettlementRecord:
    return SettlementRecord(
        group_id=TRIP,
        settle_from=settle_from,
        settle_to=settle_to,
        amount=amount,
        settle_date=datetime(2024, 3, day, 12, 0, 0, tzinfo=timezone.utc),
        **kwargs,
    )


@pytest.fixture()
def ledger_repo(test_session: Session) -> GroupLedgerRepository:
    return GroupLedgerRepository(test_session)


@pytest.fixture()
def record_repo(test_session: Session) -> SettlementRecordRepository:
    return SettlementRecordRepository(test_session)


def test_create_and_get_ledger(ledger_repo: GroupLedgerRepository) -> None:
    created = ledger_repo.create(TRIP, Currency.USD)

    assert created.group_id == TRIP
    assert created.currency == Currency.USD
    assert len(created.balances) == 0
    assert created.version == 0

    fetched = ledger_repo.get(TRIP)
    assert fetched == created
    assert ledger_repo.get(FLAT) is None


def test_create_twice_is_rejected(ledger_repo: GroupLedgerRepository) -> None:
    ledger_repo.create(TRIP, Currency.USD)

    with pytest.raises(InvalidInput):
        ledger_repo.create(TRIP, Currency.EUR)


def test_save_persists_balances_and_bumps_version(ledger_repo: GroupLedgerRepository) -> None:
    ledger = ledger_repo.create(TRIP, Currency.INR)
    ledger.record_expense(ExpenseShare(owner=ALICE, total_amount=10000, participants=frozenset({ALICE, BOB, CAROL})))

    saved = ledger_repo.save(ledger)

    assert saved.version == 1
    reloaded = ledger_repo.get(TRIP)
    assert reloaded is not None
    assert reloaded.balances == {ALICE: 6666, BOB: -3333, CAROL: -3333}
    assert reloaded.group_total == 10000
    assert reloaded.version == 1


def test_stale_save_raises_conflict_and_keeps_stored_row(test_session_factory: sessionmaker[Session]) -> None:
    with test_session_factory() as session:
        GroupLedgerRepository(session).create(TRIP, Currency.INR)

    with test_session_factory() as first_session, test_session_factory() as second_session:
        first_repo = GroupLedgerRepository(first_session)
        second_repo = GroupLedgerRepository(second_session)
        first = first_repo.get(TRIP)
        second = second_repo.get(TRIP)
        assert first is not None and second is not None

        first.record_expense(ExpenseShare(owner=ALICE, total_amount=600, participants=frozenset({ALICE, BOB})))
        first_repo.save(first)

        second.record_expense(ExpenseShare(owner=BOB, total_amount=900, participants=frozenset({ALICE, BOB})))
        with pytest.raises(ConcurrencyConflict) as exc_info:
            second_repo.save(second)

    assert exc_info.value.expected_version == 0
    assert exc_info.value.actual_version == 1
    with test_session_factory() as session:
        stored = GroupLedgerRepository(session).get(TRIP)
    assert stored is not None
    assert stored.balances == {ALICE: 300, BOB: -300}
    assert stored.group_total == 600


def test_corrupted_row_is_refused_on_load(test_session: Session, ledger_repo: GroupLedgerRepository) -> None:
    test_session.add(
        models.GroupLedgerOrm(group_id=TRIP, currency="INR", balances={ALICE: 5}, group_total=0, version=3)
    )
    test_session.commit()

    with pytest.raises(InvariantViolation):
        ledger_repo.get(TRIP)


def test_delete_ledger(ledger_repo: GroupLedgerRepository) -> None:
    ledger_repo.create(TRIP, Currency.INR)

    assert ledger_repo.delete(TRIP) is True
    assert ledger_repo.get(TRIP) is None
    assert ledger_repo.delete(TRIP) is False


def test_create_and_get_settlement_record(record_repo: SettlementRecordRepository) -> None:
    record = _record(BOB, ALICE, 2500, day=1, order_id="order_1")

    created = record_repo.create(record)

    assert created == record
    assert record_repo.get(record.id) == record


def test_group_history_is_newest_first(record_repo: SettlementRecordRepository) -> None:
    older = record_repo.create(_record(BOB, ALICE, 100, day=1))
    newer = record_repo.create(_record(CAROL, ALICE, 200, day=5))
    record_repo.create(_record(CAROL, BOB, 300, day=3).model_copy(update={"group_id": FLAT}))

    history = record_repo.list_for_group(TRIP)

    assert [record.id for record in history] == [newer.id, older.id]


def test_member_history_and_pending_filter(record_repo: SettlementRecordRepository) -> None:
    paid = record_repo.create(_record(BOB, ALICE, 100, day=1, status=SettlementStatus.COMPLETED))
    pending = record_repo.create(_record(ALICE, CAROL, 200, day=2))
    record_repo.create(_record(CAROL, BOB, 300, day=3))

    assert [record.id for record in record_repo.list_for_member(ALICE)] == [pending.id, paid.id]
    assert [record.id for record in record_repo.pending_for_member(ALICE)] == [pending.id]


def test_update_settlement_record(record_repo: SettlementRecordRepository) -> None:
    record = record_repo.create(_record(BOB, ALICE, 2500, day=1))
    cancelled_at = datetime(2024, 3, 2, tzinfo=timezone.utc)

    updated = record_repo.update(
        record.model_copy(update={"status": SettlementStatus.CANCELLED, "cancelled_at": cancelled_at})
    )

    assert updated.status == SettlementStatus.CANCELLED
    assert updated.cancelled_at == cancelled_at
    assert record_repo.list_for_group(TRIP, status=SettlementStatus.PENDING) == []


def _expense_record(
    group_id: str, owner: str, total: int, participants: set[str], day: int, *, recorded_day: int = 20
) -> ExpenseRecord:
    return ExpenseRecord(
        group_id=group_id,
        name="Groceries",
        owner=owner,
        total_amount=total,
        participants=frozenset(participants),
        expense_date=datetime(2024, 3, day, 18, 30, tzinfo=timezone.utc),
        created_at=datetime(2024, 3, recorded_day, 9, 0, tzinfo=timezone.utc),
    )


@pytest.fixture()
def expense_repo(test_session: Session) -> ExpenseRecordRepository:
    return ExpenseRecordRepository(test_session)


def test_create_and_get_expense_record(expense_repo: ExpenseRecordRepository) -> None:
    record = _expense_record(TRIP, ALICE, 9000, {ALICE, BOB, CAROL}, day=1)

    created = expense_repo.create(record)

    assert created == record
    assert expense_repo.get(record.id) == record


def test_update_expense_record_swaps_participants(expense_repo: ExpenseRecordRepository) -> None:
    record = expense_repo.create(_expense_record(TRIP, ALICE, 9000, {ALICE, BOB, CAROL}, day=1))

    updated = expense_repo.update(
        record.model_copy(update={"participants": frozenset({ALICE, DAVE}), "category": "Food", "total_amount": 800})
    )

    assert updated.participants == frozenset({ALICE, DAVE})
    assert expense_repo.get(record.id) == updated
    assert expense_repo.list_for_member(CAROL) == []
    assert [expense.id for expense in expense_repo.list_for_member(DAVE)] == [record.id]


def test_expense_listings(expense_repo: ExpenseRecordRepository) -> None:
    older = expense_repo.create(_expense_record(TRIP, ALICE, 100, {ALICE, BOB}, day=1, recorded_day=21))
    newer = expense_repo.create(_expense_record(TRIP, BOB, 200, {BOB, CAROL}, day=5, recorded_day=22))
    elsewhere = expense_repo.create(_expense_record(FLAT, CAROL, 300, {BOB, CAROL}, day=3, recorded_day=23))

    assert [expense.id for expense in expense_repo.list_for_group(TRIP)] == [newer.id, older.id]
    assert [expense.id for expense in expense_repo.list_for_member(BOB)] == [newer.id, elsewhere.id, older.id]
    assert [expense.id for expense in expense_repo.recent_for_member(BOB, limit=2)] == [elsewhere.id, newer.id]


def test_delete_expense_records(expense_repo: ExpenseRecordRepository) -> None:
    first = expense_repo.create(_expense_record(TRIP, ALICE, 100, {ALICE, BOB}, day=1))
    expense_repo.create(_expense_record(TRIP, BOB, 200, {BOB, CAROL}, day=2))
    kept = expense_repo.create(_expense_record(FLAT, CAROL, 300, {BOB, CAROL}, day=3))

    assert expense_repo.delete(first.id) is True
    assert expense_repo.delete(first.id) is False
    assert expense_repo.delete_for_group(TRIP) == 1
    assert expense_repo.list_for_member(BOB) == [kept]
