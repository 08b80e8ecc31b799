from __future__ import annotations

import logging
from datetime import datetime, timezone

from pydantic import ValidationError
from sqlalchemy.orm import Session, sessionmaker

from db.repositories import ExpenseRecordRepository, GroupLedgerRepository, SettlementRecordRepository
from domain.base_types import ExpenseRecordId, GroupId, MemberId, SettlementRecordId
from domain.errors import InvalidInput, UnknownExpense, UnknownGroup
from domain.expense_record import DEFAULT_CATEGORY, ExpenseRecord
from domain.group_ledger import GroupLedger
from domain.ledger import ExpenseShare, PaymentEvent, validate_amount
from domain.money import Currency
from domain.settlement import SettlementPlan, compute_settlement
from domain.settlement_record import SettlementRecord, SettlementStatus
from utils.expense_summary import ExpenseReport, compute_expense_report
from utils.settlement_summary import MemberPosition, SettlementStats, compute_member_position, compute_settlement_stats

from .locks import GroupLockRegistry

logger = logging.getLogger(__name__)


class LedgerService:
    """Runs ledger mutations for many groups, one at a time per group.

    Every mutation reads the stored ledger, applies the change and writes it
    back inside the group's lock and a single session transaction. A write that
    loses an optimistic version race raises ``ConcurrencyConflict``; it is
    never retried here.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        locks: GroupLockRegistry | None = None,
        default_currency: Currency = Currency.INR,
    ) -> None:
        self._session_factory = session_factory
        self._locks = locks or GroupLockRegistry()
        self._default_currency = default_currency

    def open_group(self, group_id: GroupId, currency: Currency | None = None) -> GroupLedger:
        with self._locks.exclusive(group_id), self._session_factory() as session:
            ledger = GroupLedgerRepository(session).create(group_id, currency or self._default_currency)
        logger.info("Opened ledger for group %s in %s", group_id, ledger.currency)
        return ledger

    def delete_group(self, group_id: GroupId) -> None:
        with self._locks.exclusive(group_id), self._session_factory() as session:
            removed = ExpenseRecordRepository(session).delete_for_group(group_id, commit=False)
            if not GroupLedgerRepository(session).delete(group_id):
                raise UnknownGroup(group_id)
        logger.info("Discarded ledger for group %s with %d expenses", group_id, removed)

    def record_expense(
        self,
        group_id: GroupId,
        expense: ExpenseShare,
        *,
        name: str = "Expense",
        category: str = DEFAULT_CATEGORY,
        description: str = "",
        expense_date: datetime | None = None,
    ) -> ExpenseRecord:
        """Apply an expense to the group's balances and store it for later edits and reports."""
        record = self._build_expense(
            group_id=group_id,
            name=name,
            category=category,
            description=description,
            owner=expense.owner,
            total_amount=expense.total_amount,
            participants=expense.participants,
            expense_date=expense_date or datetime.now(timezone.utc),
        )
        with self._locks.exclusive(group_id), self._session_factory() as session:
            ledgers = GroupLedgerRepository(session)
            ledger = self._require(ledgers, group_id)
            ledger.record_expense(record.share())
            saved = ledgers.save(ledger, commit=False)
            record = ExpenseRecordRepository(session).create(record, commit=False)
            session.commit()
        logger.info("Recorded expense %s in group %s, ledger version %d", record.id, group_id, saved.version)
        return record

    def remove_expense(self, expense_id: ExpenseRecordId) -> GroupLedger:
        """Reverse a stored expense and delete it."""
        group_id = self._expense_group(expense_id)
        with self._locks.exclusive(group_id), self._session_factory() as session:
            expenses = ExpenseRecordRepository(session)
            record = self._require_expense(expenses, expense_id)
            ledgers = GroupLedgerRepository(session)
            ledger = self._require(ledgers, group_id)
            ledger.remove_expense(record.share())
            saved = ledgers.save(ledger, commit=False)
            expenses.delete(record.id, commit=False)
            session.commit()
        logger.info("Removed expense %s from group %s, ledger version %d", expense_id, group_id, saved.version)
        return saved

    def edit_expense(
        self,
        expense_id: ExpenseRecordId,
        new: ExpenseShare,
        *,
        name: str | None = None,
        category: str | None = None,
        description: str | None = None,
        expense_date: datetime | None = None,
    ) -> ExpenseRecord:
        """Replace the share of a stored expense; details left as ``None`` keep their stored value."""
        group_id = self._expense_group(expense_id)
        with self._locks.exclusive(group_id), self._session_factory() as session:
            expenses = ExpenseRecordRepository(session)
            current = self._require_expense(expenses, expense_id)
            fields = current.model_dump()
            details = {"name": name, "category": category, "description": description, "expense_date": expense_date}
            fields.update({key: value for key, value in details.items() if value is not None})
            fields.update(owner=new.owner, total_amount=new.total_amount, participants=new.participants)
            updated = self._build_expense(**fields)

            ledgers = GroupLedgerRepository(session)
            ledger = self._require(ledgers, group_id)
            ledger.replace_expense(current.share(), updated.share())
            saved = ledgers.save(ledger, commit=False)
            updated = expenses.update(updated, commit=False)
            session.commit()
        logger.info("Edited expense %s in group %s, ledger version %d", expense_id, group_id, saved.version)
        return updated

    def record_payment(
        self, group_id: GroupId, payment: PaymentEvent, *, settle_date: datetime | None = None
    ) -> SettlementRecord:
        """Apply a manual settle-up and keep it as a completed settlement record."""
        with self._locks.exclusive(group_id), self._session_factory() as session:
            ledgers = GroupLedgerRepository(session)
            ledger = self._require(ledgers, group_id)
            ledger.record_payment(payment)
            ledgers.save(ledger, commit=False)
            record = SettlementRecordRepository(session).create(
                SettlementRecord(
                    group_id=group_id,
                    settle_from=payment.payer,
                    settle_to=payment.payee,
                    amount=payment.amount,
                    settle_date=settle_date or datetime.now(timezone.utc),
                    status=SettlementStatus.COMPLETED,
                ),
                commit=False,
            )
            session.commit()
        logger.info(
            "Recorded payment %s -> %s of %d in group %s", payment.payer, payment.payee, payment.amount, group_id
        )
        return record

    def request_settlement(
        self,
        group_id: GroupId,
        *,
        payer: MemberId,
        payee: MemberId,
        amount: int,
        order_id: str | None = None,
        settle_date: datetime | None = None,
    ) -> SettlementRecord:
        """Create a pending settlement; balances change only once it is confirmed."""
        validate_amount(amount)
        with self._session_factory() as session:
            self._require(GroupLedgerRepository(session), group_id)
            record = SettlementRecordRepository(session).create(
                SettlementRecord(
                    group_id=group_id,
                    settle_from=payer,
                    settle_to=payee,
                    amount=amount,
                    settle_date=settle_date or datetime.now(timezone.utc),
                    order_id=order_id,
                )
            )
        logger.info("Pending settlement %s created in group %s", record.id, group_id)
        return record

    def confirm_settlement(self, record_id: SettlementRecordId, *, amount: int | None = None) -> SettlementRecord:
        """Apply a confirmed payment for a pending settlement.

        Without ``amount`` the whole settlement is paid. A smaller ``amount`` is
        a partial payment: it is booked as its own completed record and the
        pending settlement keeps the remainder.
        """
        with self._session_factory() as session:
            group_id = self._require_pending(SettlementRecordRepository(session), record_id).group_id

        with self._locks.exclusive(group_id), self._session_factory() as session:
            records = SettlementRecordRepository(session)
            # Re-read under the lock: a concurrent confirmation may have consumed it.
            pending = self._require_pending(records, record_id)
            paid = pending.amount if amount is None else validate_amount(amount)
            if paid > pending.amount:
                raise InvalidInput(f"Payment of {paid} exceeds pending settlement amount {pending.amount}")

            ledgers = GroupLedgerRepository(session)
            ledger = self._require(ledgers, group_id)
            ledger.record_payment(PaymentEvent(payer=pending.settle_from, payee=pending.settle_to, amount=paid))
            ledgers.save(ledger, commit=False)

            if paid == pending.amount:
                result = records.update(pending.model_copy(update={"status": SettlementStatus.COMPLETED}), commit=False)
            else:
                records.update(pending.model_copy(update={"amount": pending.amount - paid}), commit=False)
                result = records.create(
                    SettlementRecord(
                        group_id=group_id,
                        settle_from=pending.settle_from,
                        settle_to=pending.settle_to,
                        amount=paid,
                        settle_date=datetime.now(timezone.utc),
                        status=SettlementStatus.COMPLETED,
                        order_id=pending.order_id,
                    ),
                    commit=False,
                )
            session.commit()

        logger.info("Confirmed settlement %s: %d paid in group %s", record_id, paid, group_id)
        return result

    def cancel_settlement(self, record_id: SettlementRecordId) -> SettlementRecord:
        with self._session_factory() as session:
            records = SettlementRecordRepository(session)
            pending = self._require_pending(records, record_id)
            cancelled = records.update(
                pending.model_copy(
                    update={"status": SettlementStatus.CANCELLED, "cancelled_at": datetime.now(timezone.utc)}
                )
            )
        logger.info("Cancelled settlement %s", record_id)
        return cancelled

    def get_ledger(self, group_id: GroupId) -> GroupLedger:
        with self._session_factory() as session:
            return self._require(GroupLedgerRepository(session), group_id)

    def balances(self, group_id: GroupId) -> dict[MemberId, int]:
        return self.get_ledger(group_id).balances.snapshot()

    def settlement_plan(self, group_id: GroupId) -> SettlementPlan:
        return compute_settlement(self.balances(group_id))

    def member_view(self, group_id: GroupId, member: MemberId) -> MemberPosition:
        balances = self.balances(group_id)
        return compute_member_position(balances, compute_settlement(balances), member)

    def settlement_history(self, group_id: GroupId) -> list[SettlementRecord]:
        with self._session_factory() as session:
            return SettlementRecordRepository(session).list_for_group(group_id)

    def member_settlements(self, member: MemberId, *, pending_only: bool = False) -> list[SettlementRecord]:
        with self._session_factory() as session:
            records = SettlementRecordRepository(session)
            if pending_only:
                return records.pending_for_member(member)
            return records.list_for_member(member)

    def settlement_stats(self, group_id: GroupId) -> SettlementStats:
        return compute_settlement_stats(self.settlement_history(group_id))

    def get_expense(self, expense_id: ExpenseRecordId) -> ExpenseRecord:
        with self._session_factory() as session:
            return self._require_expense(ExpenseRecordRepository(session), expense_id)

    def group_expenses(self, group_id: GroupId) -> list[ExpenseRecord]:
        """Stored expenses of the group, newest expense date first."""
        with self._session_factory() as session:
            self._require(GroupLedgerRepository(session), group_id)
            return ExpenseRecordRepository(session).list_for_group(group_id)

    def member_expenses(self, member: MemberId) -> list[ExpenseRecord]:
        with self._session_factory() as session:
            return ExpenseRecordRepository(session).list_for_member(member)

    def recent_member_expenses(self, member: MemberId, *, limit: int = 5) -> list[ExpenseRecord]:
        with self._session_factory() as session:
            return ExpenseRecordRepository(session).recent_for_member(member, limit=limit)

    def group_expense_report(self, group_id: GroupId, *, now: datetime | None = None) -> ExpenseReport:
        return compute_expense_report(self.group_expenses(group_id), now=now or datetime.now(timezone.utc))

    def member_expense_report(self, member: MemberId, *, now: datetime | None = None) -> ExpenseReport:
        return compute_expense_report(
            self.member_expenses(member), now=now or datetime.now(timezone.utc), member=member
        )

    def _expense_group(self, expense_id: ExpenseRecordId) -> GroupId:
        with self._session_factory() as session:
            return self._require_expense(ExpenseRecordRepository(session), expense_id).group_id

    @staticmethod
    def _build_expense(**fields: object) -> ExpenseRecord:
        try:
            return ExpenseRecord.model_validate(fields)
        except ValidationError as exc:
            raise InvalidInput(f"Malformed expense record: {exc}") from exc

    @staticmethod
    def _require_expense(expenses: ExpenseRecordRepository, expense_id: ExpenseRecordId) -> ExpenseRecord:
        record = expenses.get(expense_id)
        if record is None:
            raise UnknownExpense(expense_id)
        return record

    @staticmethod
    def _require(repository: GroupLedgerRepository, group_id: GroupId) -> GroupLedger:
        ledger = repository.get(group_id)
        if ledger is None:
            raise UnknownGroup(group_id)
        return ledger

    @staticmethod
    def _require_pending(records: SettlementRecordRepository, record_id: SettlementRecordId) -> SettlementRecord:
        record = records.get(record_id)
        if record is None:
            raise InvalidInput(f"Settlement record {record_id} not found")
        if record.status != SettlementStatus.PENDING:
            raise InvalidInput(f"Settlement record {record_id} is {record.status}, only pending settlements qualify")
        return record
