from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class GroupLedgerOrm(Base):
    __tablename__ = "group_ledgers"

    group_id: Mapped[str] = mapped_column(String, primary_key=True)
    currency: Mapped[str] = mapped_column(String, nullable=False)
    # member id -> signed minor units, stored as one document per group
    balances: Mapped[dict[str, int]] = mapped_column(JSON, nullable=False, default=dict)
    group_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class SettlementRecordOrm(Base):
    __tablename__ = "settlement_records"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    group_id: Mapped[str] = mapped_column(String, nullable=False)
    settle_from: Mapped[str] = mapped_column(String, nullable=False)
    settle_to: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    settle_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)
    order_id: Mapped[str | None] = mapped_column(String, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_settlement_records_group_date", "group_id", "settle_date"),)


class ExpenseRecordOrm(Base):
    __tablename__ = "expense_records"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    group_id: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    category: Mapped[str] = mapped_column(String, nullable=False)
    owner: Mapped[str] = mapped_column(String, nullable=False)
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    expense_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    participants: Mapped[list["ExpenseParticipantOrm"]] = relationship(
        cascade="all, delete-orphan", back_populates="expense", lazy="joined"
    )

    __table_args__ = (Index("ix_expense_records_group_date", "group_id", "expense_date"),)


class ExpenseParticipantOrm(Base):
    __tablename__ = "expense_participants"

    expense_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("expense_records.id"), primary_key=True)
    member_id: Mapped[str] = mapped_column(String, primary_key=True, index=True)

    expense: Mapped[ExpenseRecordOrm] = relationship(back_populates="participants")
