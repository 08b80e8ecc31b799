from __future__ import annotations

from typing import NewType
from uuid import UUID

MemberId = NewType("MemberId", str)
GroupId = NewType("GroupId", str)
SettlementRecordId = NewType("SettlementRecordId", UUID)
ExpenseRecordId = NewType("ExpenseRecordId", UUID)

# Signed integer amount in the currency's smallest unit (cents, paise).
MinorUnits = int
