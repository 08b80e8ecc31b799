import pytest

from domain.errors import InvalidInput
from domain.group_ledger import GroupLedger
from domain.ledger import ExpenseShare, PaymentEvent
from domain.money import Currency
from tests.constants import ALICE, BOB, CAROL, TRIP


def _dinner(total: int = 9000) -> ExpenseShare:
    return ExpenseShare(owner=ALICE, total_amount=total, participants=frozenset({ALICE, BOB, CAROL}))


def test_group_total_follows_live_expenses() -> None:
    ledger = GroupLedger(group_id=TRIP, currency=Currency.EUR)

    ledger.record_expense(_dinner())
    ledger.record_expense(ExpenseShare(owner=BOB, total_amount=1500, participants=frozenset({ALICE, BOB})))
    assert ledger.group_total == 10500

    ledger.replace_expense(_dinner(), _dinner(12000))
    assert ledger.group_total == 13500

    ledger.remove_expense(_dinner(12000))
    assert ledger.group_total == 1500
    assert ledger.balances == {ALICE: -750, BOB: 750}


def test_payments_do_not_change_group_total() -> None:
    ledger = GroupLedger(group_id=TRIP, currency=Currency.EUR)
    ledger.record_expense(_dinner())

    ledger.record_payment(PaymentEvent(payer=BOB, payee=ALICE, amount=3000))

    assert ledger.group_total == 9000
    assert ledger.balances == {ALICE: 3000, CAROL: -3000}


def test_failed_expense_keeps_group_total() -> None:
    ledger = GroupLedger(group_id=TRIP, currency=Currency.EUR)
    ledger.record_expense(_dinner())

    with pytest.raises(InvalidInput):
        ledger.record_expense(ExpenseShare(owner=ALICE, total_amount=500, participants=frozenset()))

    assert ledger.group_total == 9000
