from __future__ import annotations

from dataclasses import dataclass, field

from .base_types import GroupId
from .ledger import (
    BalanceVector,
    ExpenseShare,
    PaymentEvent,
    apply_expense,
    apply_payment,
    edit_expense,
    reverse_expense,
)
from .money import Currency


@dataclass
class GroupLedger:
    """Balance vector of one group plus the bookkeeping persisted with it.

    ``group_total`` is the sum of all live expenses. ``version`` is the
    optimistic concurrency token of the stored row this ledger was read from.
    """

    group_id: GroupId
    currency: Currency
    balances: BalanceVector = field(default_factory=BalanceVector)
    group_total: int = 0
    version: int = 0

    def record_expense(self, expense: ExpenseShare) -> None:
        apply_expense(
            self.balances,
            owner=expense.owner,
            total_amount=expense.total_amount,
            participants=expense.participants,
        )
        self.group_total += expense.total_amount

    def remove_expense(self, expense: ExpenseShare) -> None:
        reverse_expense(
            self.balances,
            owner=expense.owner,
            total_amount=expense.total_amount,
            participants=expense.participants,
        )
        self.group_total -= expense.total_amount

    def replace_expense(self, old: ExpenseShare, new: ExpenseShare) -> None:
        edit_expense(self.balances, old=old, new=new)
        self.group_total += new.total_amount - old.total_amount

    def record_payment(self, payment: PaymentEvent) -> None:
        apply_payment(self.balances, payer=payment.payer, payee=payment.payee, amount=payment.amount)
