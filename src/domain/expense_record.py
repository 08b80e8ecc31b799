from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from .base_types import ExpenseRecordId, GroupId, MemberId
from .ledger import ExpenseShare

DEFAULT_CATEGORY = "Others"


class ExpenseRecord(BaseModel):
    """A stored group expense: the share it applied to the balances plus what it was for.

    Removing or editing an expense always reverses the share kept here, never
    one supplied by the caller.
    """

    id: ExpenseRecordId = Field(default_factory=lambda: ExpenseRecordId(uuid4()))
    group_id: GroupId
    name: str
    description: str = Field(default="", max_length=100)
    category: str = DEFAULT_CATEGORY
    owner: MemberId
    total_amount: int
    participants: frozenset[MemberId]
    expense_date: datetime
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("name", "category")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    def share(self) -> ExpenseShare:
        return ExpenseShare(owner=self.owner, total_amount=self.total_amount, participants=self.participants)

    def share_of(self, member: str) -> int:
        """What ``member`` consumed of this expense, in minor units.

        Participants get the floored even share; an owner who is also a
        participant carries the indivisible remainder, as in the balances.
        """
        if member not in self.participants:
            return 0
        share = self.total_amount // len(self.participants)
        if member == self.owner:
            return self.total_amount - share * (len(self.participants) - 1)
        return share
