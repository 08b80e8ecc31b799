from datetime import datetime, timezone

import pytest

from domain.settlement import compute_settlement
from domain.settlement_record import SettlementRecord, SettlementStatus
from tests.constants import ALICE, BOB, CAROL, DAVE, TRIP
from utils.formatting import format_currency, format_signed_currency
from utils.settlement_summary import (
    compute_member_position,
    compute_settlement_stats,
    render_balances,
    render_settlement_plan,
)


def _record(amount: int, month: int, status: SettlementStatus = SettlementStatus.COMPLETED) -> SettlementRecord:
    return SettlementRecord(
        group_id=TRIP,
        settle_from=BOB,
        settle_to=ALICE,
        amount=amount,
        settle_date=datetime(2024, month, 15, tzinfo=timezone.utc),
        status=status,
    )


def test_member_position_splits_payments_and_receipts() -> None:
    balances = {ALICE: 700, BOB: 400, CAROL: -1000, DAVE: -100}
    plan = compute_settlement(balances)

    carol = compute_member_position(balances, plan, CAROL)
    bob = compute_member_position(balances, plan, BOB)

    assert carol.net_balance == -1000
    assert carol.total_to_pay == 1000
    assert carol.to_receive == []
    assert bob.total_to_receive == 400
    assert [instruction.from_member for instruction in bob.to_receive] == [CAROL, DAVE]


def test_member_without_balance_has_empty_position() -> None:
    position = compute_member_position({}, [], ALICE)

    assert position.net_balance == 0
    assert position.total_to_pay == 0
    assert position.total_to_receive == 0


def test_settlement_stats_group_completed_records_by_month() -> None:
    records = [
        _record(1000, 1),
        _record(500, 3),
        _record(250, 3),
        _record(9999, 3, SettlementStatus.PENDING),
        _record(7777, 2, SettlementStatus.CANCELLED),
    ]

    stats = compute_settlement_stats(records)

    assert stats.count == 3
    assert stats.total_amount == 1750
    assert stats.average_amount == 583
    assert [(month.month, month.total_amount, month.count) for month in stats.monthly] == [(3, 750, 2), (1, 1000, 1)]


def test_settlement_stats_without_records() -> None:
    stats = compute_settlement_stats([])

    assert stats.count == 0
    assert stats.average_amount == 0
    assert stats.monthly == []


@pytest.mark.parametrize(
    ("minor_units", "currency", "expected"),
    [(1234, None, "12.34"), (-5, "EUR", "-0.05 EUR"), (10000, "INR", "100.00 INR")],
)
def test_format_currency(minor_units: int, currency: str | None, expected: str) -> None:
    assert format_currency(minor_units, currency) == expected


def test_format_signed_currency_marks_credits() -> None:
    assert format_signed_currency(250) == "+2.50"
    assert format_signed_currency(-250) == "-2.50"


def test_render_balances_and_plan(capsys: pytest.CaptureFixture[str]) -> None:
    balances = {ALICE: 5000, BOB: -2000, CAROL: -3000}

    render_balances(balances, currency="EUR")
    render_settlement_plan(compute_settlement(balances), currency="EUR")

    output = capsys.readouterr().out
    assert "Balances (EUR):" in output
    assert "+50.00" in output
    assert f"{CAROL} pays {ALICE} 30.00 EUR" in output
    assert f"{BOB} pays {ALICE} 20.00 EUR" in output


def test_render_empty_summaries(capsys: pytest.CaptureFixture[str]) -> None:
    render_balances({}, currency="INR")
    render_settlement_plan([], currency="INR")

    output = capsys.readouterr().out
    assert "(all settled)" in output
    assert "(nothing to settle)" in output
