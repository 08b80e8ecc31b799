from __future__ import annotations

import logging
from datetime import timezone
from uuid import UUID

from sqlalchemy import ColumnElement, or_, select, update
from sqlalchemy.orm import Session

from db import models
from domain.base_types import ExpenseRecordId, GroupId, MemberId, SettlementRecordId
from domain.errors import ConcurrencyConflict, InvalidInput, UnknownExpense
from domain.expense_record import ExpenseRecord
from domain.group_ledger import GroupLedger
from domain.ledger import BalanceVector
from domain.money import Currency
from domain.settlement_record import SettlementRecord, SettlementStatus

logger = logging.getLogger(__name__)


class GroupLedgerRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create(self, group_id: GroupId, currency: Currency) -> GroupLedger:
        if self._session.get(models.GroupLedgerOrm, group_id) is not None:
            raise InvalidInput(f"Group {group_id} already has a ledger")

        orm_ledger = models.GroupLedgerOrm(
            group_id=group_id,
            currency=currency.value,
            balances={},
            group_total=0,
            version=0,
        )
        self._session.add(orm_ledger)
        self._session.commit()
        self._session.refresh(orm_ledger)
        return self._to_domain(orm_ledger)

    def get(self, group_id: GroupId) -> GroupLedger | None:
        orm_ledger = self._session.get(models.GroupLedgerOrm, group_id, populate_existing=True)
        if orm_ledger is None:
            return None
        return self._to_domain(orm_ledger)

    def save(self, ledger: GroupLedger, *, commit: bool = True) -> GroupLedger:
        """Write the ledger back if nobody else did since it was read.

        The row is updated only when its version still equals ``ledger.version``;
        otherwise :class:`ConcurrencyConflict` is raised and nothing is written.
        """
        stmt = (
            update(models.GroupLedgerOrm)
            .where(
                models.GroupLedgerOrm.group_id == ledger.group_id,
                models.GroupLedgerOrm.version == ledger.version,
            )
            .values(
                balances=ledger.balances.snapshot(),
                group_total=ledger.group_total,
                version=ledger.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(stmt)
        if result.rowcount != 1:
            self._session.rollback()
            actual_version = self._session.scalar(
                select(models.GroupLedgerOrm.version).where(models.GroupLedgerOrm.group_id == ledger.group_id)
            )
            logger.warning(
                "Lost update on group %s: expected version %d, stored version %s",
                ledger.group_id,
                ledger.version,
                actual_version,
            )
            raise ConcurrencyConflict(
                group_id=ledger.group_id,
                expected_version=ledger.version,
                actual_version=actual_version,
            )

        ledger.version += 1
        if commit:
            self._session.commit()
        return ledger

    def delete(self, group_id: GroupId) -> bool:
        orm_ledger = self._session.get(models.GroupLedgerOrm, group_id)
        if orm_ledger is None:
            return False
        self._session.delete(orm_ledger)
        self._session.commit()
        return True

    @staticmethod
    def _to_domain(orm_ledger: models.GroupLedgerOrm) -> GroupLedger:
        return GroupLedger(
            group_id=GroupId(orm_ledger.group_id),
            currency=Currency(orm_ledger.currency),
            balances=BalanceVector.from_mapping(orm_ledger.balances),
            group_total=orm_ledger.group_total,
            version=orm_ledger.version,
        )


class SettlementRecordRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create(self, record: SettlementRecord, *, commit: bool = True) -> SettlementRecord:
        orm_record = models.SettlementRecordOrm(
            id=record.id,
            group_id=record.group_id,
            settle_from=record.settle_from,
            settle_to=record.settle_to,
            amount=record.amount,
            settle_date=record.settle_date,
            status=record.status.value,
            order_id=record.order_id,
            cancelled_at=record.cancelled_at,
        )
        self._session.add(orm_record)
        if commit:
            self._session.commit()
            self._session.refresh(orm_record)
        else:
            self._session.flush()
        return self._to_domain(orm_record)

    def get(self, record_id: SettlementRecordId | UUID) -> SettlementRecord | None:
        orm_record = self._session.get(models.SettlementRecordOrm, record_id, populate_existing=True)
        if orm_record is None:
            return None
        return self._to_domain(orm_record)

    def update(self, record: SettlementRecord, *, commit: bool = True) -> SettlementRecord:
        orm_record = self._session.get(models.SettlementRecordOrm, record.id)
        if orm_record is None:
            raise InvalidInput(f"Settlement record {record.id} not found")
        orm_record.amount = record.amount
        orm_record.status = record.status.value
        orm_record.order_id = record.order_id
        orm_record.cancelled_at = record.cancelled_at
        if commit:
            self._session.commit()
            self._session.refresh(orm_record)
        else:
            self._session.flush()
        return self._to_domain(orm_record)

    def list_for_group(self, group_id: GroupId, *, status: SettlementStatus | None = None) -> list[SettlementRecord]:
        stmt = select(models.SettlementRecordOrm).where(models.SettlementRecordOrm.group_id == group_id)
        if status is not None:
            stmt = stmt.where(models.SettlementRecordOrm.status == status.value)
        stmt = stmt.order_by(models.SettlementRecordOrm.settle_date.desc())
        return [self._to_domain(row) for row in self._session.execute(stmt).scalars().all()]

    def list_for_member(self, member: MemberId, *, status: SettlementStatus | None = None) -> list[SettlementRecord]:
        stmt = select(models.SettlementRecordOrm).where(
            or_(models.SettlementRecordOrm.settle_from == member, models.SettlementRecordOrm.settle_to == member)
        )
        if status is not None:
            stmt = stmt.where(models.SettlementRecordOrm.status == status.value)
        stmt = stmt.order_by(models.SettlementRecordOrm.settle_date.desc())
        return [self._to_domain(row) for row in self._session.execute(stmt).scalars().all()]

    def pending_for_member(self, member: MemberId) -> list[SettlementRecord]:
        return self.list_for_member(member, status=SettlementStatus.PENDING)

    @staticmethod
    def _to_domain(orm_record: models.SettlementRecordOrm) -> SettlementRecord:
        settle_date = orm_record.settle_date
        if settle_date.tzinfo is None:
            settle_date = settle_date.replace(tzinfo=timezone.utc)
        cancelled_at = orm_record.cancelled_at
        if cancelled_at is not None and cancelled_at.tzinfo is None:
            cancelled_at = cancelled_at.replace(tzinfo=timezone.utc)

        return SettlementRecord(
            id=orm_record.id,
            group_id=GroupId(orm_record.group_id),
            settle_from=MemberId(orm_record.settle_from),
            settle_to=MemberId(orm_record.settle_to),
            amount=orm_record.amount,
            settle_date=settle_date,
            status=SettlementStatus(orm_record.status),
            order_id=orm_record.order_id,
            cancelled_at=cancelled_at,
        )


class ExpenseRecordRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create(self, record: ExpenseRecord, *, commit: bool = True) -> ExpenseRecord:
        orm_record = models.ExpenseRecordOrm(
            id=record.id,
            group_id=record.group_id,
            name=record.name,
            description=record.description,
            category=record.category,
            owner=record.owner,
            total_amount=record.total_amount,
            expense_date=record.expense_date,
            created_at=record.created_at,
        )
        orm_record.participants = [
            models.ExpenseParticipantOrm(member_id=member) for member in sorted(record.participants)
        ]
        self._session.add(orm_record)
        return self._finish(orm_record, commit=commit)

    def get(self, expense_id: ExpenseRecordId | UUID) -> ExpenseRecord | None:
        orm_record = self._session.get(models.ExpenseRecordOrm, expense_id, populate_existing=True)
        if orm_record is None:
            return None
        return self._to_domain(orm_record)

    def update(self, record: ExpenseRecord, *, commit: bool = True) -> ExpenseRecord:
        orm_record = self._session.get(models.ExpenseRecordOrm, record.id)
        if orm_record is None:
            raise UnknownExpense(record.id)
        orm_record.name = record.name
        orm_record.description = record.description
        orm_record.category = record.category
        orm_record.owner = record.owner
        orm_record.total_amount = record.total_amount
        orm_record.expense_date = record.expense_date

        # Keep rows of members that stay so no (expense, member) key is deleted and re-inserted in one flush.
        kept = [row for row in orm_record.participants if row.member_id in record.participants]
        known = {row.member_id for row in kept}
        orm_record.participants = kept + [
            models.ExpenseParticipantOrm(member_id=member)
            for member in sorted(record.participants)
            if member not in known
        ]
        return self._finish(orm_record, commit=commit)

    def delete(self, expense_id: ExpenseRecordId | UUID, *, commit: bool = True) -> bool:
        orm_record = self._session.get(models.ExpenseRecordOrm, expense_id)
        if orm_record is None:
            return False
        self._session.delete(orm_record)
        if commit:
            self._session.commit()
        else:
            self._session.flush()
        return True

    def delete_for_group(self, group_id: GroupId, *, commit: bool = True) -> int:
        stmt = select(models.ExpenseRecordOrm).where(models.ExpenseRecordOrm.group_id == group_id)
        orm_records = self._session.execute(stmt).unique().scalars().all()
        for orm_record in orm_records:
            self._session.delete(orm_record)
        if commit:
            self._session.commit()
        else:
            self._session.flush()
        return len(orm_records)

    def list_for_group(self, group_id: GroupId) -> list[ExpenseRecord]:
        stmt = (
            select(models.ExpenseRecordOrm)
            .where(models.ExpenseRecordOrm.group_id == group_id)
            .order_by(models.ExpenseRecordOrm.expense_date.desc())
        )
        return [self._to_domain(row) for row in self._session.execute(stmt).unique().scalars().all()]

    def list_for_member(self, member: MemberId) -> list[ExpenseRecord]:
        stmt = (
            select(models.ExpenseRecordOrm)
            .where(self._has_participant(member))
            .order_by(models.ExpenseRecordOrm.expense_date.desc())
        )
        return [self._to_domain(row) for row in self._session.execute(stmt).unique().scalars().all()]

    def recent_for_member(self, member: MemberId, *, limit: int = 5) -> list[ExpenseRecord]:
        """The ``limit`` most recently recorded expenses ``member`` took part in, across groups."""
        stmt = (
            select(models.ExpenseRecordOrm)
            .where(self._has_participant(member))
            .order_by(models.ExpenseRecordOrm.created_at.desc(), models.ExpenseRecordOrm.expense_date.desc())
            .limit(limit)
        )
        return [self._to_domain(row) for row in self._session.execute(stmt).unique().scalars().all()]

    @staticmethod
    def _has_participant(member: MemberId) -> ColumnElement[bool]:
        return models.ExpenseRecordOrm.participants.any(models.ExpenseParticipantOrm.member_id == member)

    def _finish(self, orm_record: models.ExpenseRecordOrm, *, commit: bool) -> ExpenseRecord:
        if commit:
            self._session.commit()
            self._session.refresh(orm_record)
        else:
            self._session.flush()
        return self._to_domain(orm_record)

    @staticmethod
    def _to_domain(orm_record: models.ExpenseRecordOrm) -> ExpenseRecord:
        expense_date = orm_record.expense_date
        if expense_date.tzinfo is None:
            expense_date = expense_date.replace(tzinfo=timezone.utc)
        created_at = orm_record.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)

        return ExpenseRecord(
            id=orm_record.id,
            group_id=GroupId(orm_record.group_id),
            name=orm_record.name,
            description=orm_record.description,
            category=orm_record.category,
            owner=MemberId(orm_record.owner),
            total_amount=orm_record.total_amount,
            participants=frozenset(MemberId(row.member_id) for row in orm_record.participants),
            expense_date=expense_date,
            created_at=created_at,
        )
