from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from domain.base_types import MemberId
from domain.settlement import SettlementInstruction, SettlementPlan, instructions_for
from domain.settlement_record import SettlementRecord, SettlementStatus

from .formatting import format_currency, format_signed_currency


@dataclass
class MemberPosition:
    """What one member pays and receives under a settlement plan."""

    member: MemberId
    net_balance: int
    to_pay: list[SettlementInstruction] = field(default_factory=list)
    to_receive: list[SettlementInstruction] = field(default_factory=list)

    @property
    def total_to_pay(self) -> int:
        return sum(instruction.amount for instruction in self.to_pay)

    @property
    def total_to_receive(self) -> int:
        return sum(instruction.amount for instruction in self.to_receive)


def compute_member_position(
    balances: Mapping[MemberId, int], plan: SettlementPlan, member: MemberId
) -> MemberPosition:
    own = instructions_for(plan, member)
    return MemberPosition(
        member=member,
        net_balance=balances.get(member, 0),
        to_pay=[instruction for instruction in own if instruction.from_member == member],
        to_receive=[instruction for instruction in own if instruction.to_member == member],
    )


@dataclass
class MonthlySettlementTotal:
    year: int
    month: int
    total_amount: int
    count: int


@dataclass
class SettlementStats:
    total_amount: int = 0
    count: int = 0
    average_amount: int = 0
    monthly: list[MonthlySettlementTotal] = field(default_factory=list)


def compute_settlement_stats(records: Iterable[SettlementRecord]) -> SettlementStats:
    """Totals over completed settlements, overall and per calendar month (newest month first).

    The average is floored to whole minor units.
    """
    totals: dict[tuple[int, int], tuple[int, int]] = {}
    total_amount = 0
    count = 0
    for record in records:
        if record.status != SettlementStatus.COMPLETED:
            continue
        total_amount += record.amount
        count += 1
        key = (record.settle_date.year, record.settle_date.month)
        month_total, month_count = totals.get(key, (0, 0))
        totals[key] = (month_total + record.amount, month_count + 1)

    monthly = [
        MonthlySettlementTotal(year=year, month=month, total_amount=month_total, count=month_count)
        for (year, month), (month_total, month_count) in sorted(totals.items(), reverse=True)
    ]
    return SettlementStats(
        total_amount=total_amount,
        count=count,
        average_amount=total_amount // count if count else 0,
        monthly=monthly,
    )


def render_balances(balances: Mapping[MemberId, int], *, currency: str) -> None:
    print(f"Balances ({currency}):")
    if not balances:
        print("  (all settled)")
        return

    rows = [(member, format_signed_currency(amount)) for member, amount in sorted(balances.items())]
    member_width = max(len("Member"), max(len(member) for member, _ in rows))
    amount_width = max(len("Balance"), max(len(amount) for _, amount in rows))

    header = f"{'Member':<{member_width}} {'Balance':>{amount_width}}"
    lines = [header, "-" * len(header)]
    lines.extend(f"{member:<{member_width}} {amount:>{amount_width}}" for member, amount in rows)
    for line in lines:
        print(f"  {line}")


def render_settlement_plan(plan: SettlementPlan, *, currency: str) -> None:
    print("Settlement plan:")
    if not plan:
        print("  (nothing to settle)")
        return

    for instruction in plan:
        amount = format_currency(instruction.amount, currency)
        print(f"  {instruction.from_member} pays {instruction.to_member} {amount}")
