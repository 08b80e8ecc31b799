from __future__ import annotations

import csv
import logging
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, field_validator

from domain.base_types import MemberId
from domain.ledger import ExpenseShare, PaymentEvent
from domain.money import to_minor_units

logger = logging.getLogger(__name__)

GroupActivity = ExpenseShare | PaymentEvent


class ActivityKind(StrEnum):
    EXPENSE = "expense"
    PAYMENT = "payment"


class ActivityRow(BaseModel):
    kind: ActivityKind
    member: MemberId
    amount: int
    counterparties: list[MemberId]

    @field_validator("kind", mode="before")
    @classmethod
    def _normalize_kind(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("member", mode="before")
    @classmethod
    def _strip_member(cls, value: str) -> str:
        return value.strip()

    @field_validator("amount", mode="before")
    @classmethod
    def _parse_amount(cls, value: str | int) -> int:
        if isinstance(value, str):
            return to_minor_units(value.strip())
        return value

    @field_validator("counterparties", mode="before")
    @classmethod
    def _split_counterparties(cls, value: str | list[str]) -> list[str]:
        if isinstance(value, str):
            return [part.strip() for part in value.split(";") if part.strip()]
        return value

    def to_activity(self) -> GroupActivity:
        if self.kind == ActivityKind.EXPENSE:
            return ExpenseShare(
                owner=self.member, total_amount=self.amount, participants=frozenset(self.counterparties)
            )
        if len(self.counterparties) != 1:
            raise ValueError(f"Payment by {self.member} must name exactly one payee")
        return PaymentEvent(payer=self.member, payee=self.counterparties[0], amount=self.amount)


def load_group_activity(csv_path: Path) -> list[GroupActivity]:
    """Load expenses and payments of one group from a CSV file, in file order.

    Columns: kind,member,amount,counterparties
    - kind: ``expense`` (member paid, split among counterparties) or ``payment``
      (member paid the single counterparty)
    - amount: major units with at most two decimals, e.g. ``12.50``
    - counterparties: member ids separated by ``;``
    """
    with csv_path.open(newline="") as f:
        reader = csv.DictReader(f)
        if reader.fieldnames is None:
            raise ValueError(f"Activity CSV {csv_path} is empty or missing headers")

        required = {"kind", "member", "amount", "counterparties"}
        missing = required - set(reader.fieldnames)
        if missing:
            raise ValueError(f"Activity CSV {csv_path} missing required columns: {', '.join(sorted(missing))}")

        activities: list[GroupActivity] = []
        for row in reader:
            activities.append(ActivityRow.model_validate(row).to_activity())

    logger.info("Loaded %d activity rows from %s", len(activities), csv_path)
    return activities
