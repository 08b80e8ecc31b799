from __future__ import annotations

import heapq
import logging
from collections.abc import Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .base_types import MemberId
from .errors import InvariantViolation

logger = logging.getLogger(__name__)


class SettlementInstruction(BaseModel):
    """``from_member`` pays ``amount`` minor units to ``to_member``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_member: MemberId = Field(alias="from")
    to_member: MemberId = Field(alias="to")
    amount: int

    @model_validator(mode="after")
    def _validate_amount(self) -> SettlementInstruction:
        if self.amount <= 0:
            raise ValueError("SettlementInstruction.amount must be > 0")
        return self


SettlementPlan = list[SettlementInstruction]


def compute_settlement(balances: Mapping[MemberId, int]) -> SettlementPlan:
    """Greedy debt simplification: largest debtor pays largest creditor until all are even.

    Ties are broken by member id so the plan is deterministic. The plan has at
    most ``len(balances) - 1`` instructions and applying all of them as
    payments brings every balance to zero.
    """
    residual = sum(balances.values())
    if residual != 0:
        logger.error("Cannot settle unbalanced balances: %s", dict(balances))
        raise InvariantViolation("Balances passed to compute_settlement do not sum to zero", residual=residual)

    # Heaps of (-magnitude, member): the largest amount pops first, then the smallest id.
    creditors: list[tuple[int, MemberId]] = []
    debtors: list[tuple[int, MemberId]] = []
    for member, amount in balances.items():
        if amount > 0:
            creditors.append((-amount, member))
        elif amount < 0:
            debtors.append((amount, member))
    heapq.heapify(creditors)
    heapq.heapify(debtors)

    plan: SettlementPlan = []
    while creditors and debtors:
        neg_credit, creditor = heapq.heappop(creditors)
        neg_debt, debtor = heapq.heappop(debtors)
        credit, debt = -neg_credit, -neg_debt

        transfer = min(credit, debt)
        plan.append(SettlementInstruction(from_member=debtor, to_member=creditor, amount=transfer))

        if credit > transfer:
            heapq.heappush(creditors, (transfer - credit, creditor))
        if debt > transfer:
            heapq.heappush(debtors, (transfer - debt, debtor))

    logger.debug("Computed settlement plan with %d instructions for %d members", len(plan), len(balances))
    return plan


def instructions_for(plan: Iterable[SettlementInstruction], member: str) -> SettlementPlan:
    """Instructions in which ``member`` pays or gets paid, in plan order."""
    return [
        instruction for instruction in plan if instruction.from_member == member or instruction.to_member == member
    ]
