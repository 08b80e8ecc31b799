from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from .base_types import GroupId, MemberId, SettlementRecordId


class SettlementStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SettlementRecord(BaseModel):
    """A settle-up between two members, either entered by hand or awaiting a gateway confirmation.

    Only completed records have moved money in the balance vector.
    """

    id: SettlementRecordId = Field(default_factory=lambda: SettlementRecordId(uuid4()))
    group_id: GroupId
    settle_from: MemberId
    settle_to: MemberId
    amount: int
    settle_date: datetime
    status: SettlementStatus = SettlementStatus.PENDING
    order_id: str | None = None
    cancelled_at: datetime | None = None

    @model_validator(mode="after")
    def _validate_fields(self) -> SettlementRecord:
        if self.amount <= 0:
            raise ValueError("SettlementRecord.amount must be > 0")
        if self.settle_from == self.settle_to:
            raise ValueError("settle_from and settle_to must be different members")
        return self
