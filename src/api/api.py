import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from time import perf_counter
from typing import AsyncGenerator, Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session, sessionmaker

from api.dependencies import LedgerServiceDep
from config import config
from db.db import create_session_factory
from domain.base_types import GroupId, MemberId
from domain.errors import InvalidInput, InvariantViolation, UnknownGroup
from domain.money import from_minor_units
from domain.settlement import instructions_for
from services.locks import GroupLockRegistry
from utils.expense_summary import ExpenseReport

logger = logging.getLogger(__name__)


class BalancesResponse(BaseModel):
    group_id: str
    currency: str
    group_total: Decimal
    balances: dict[str, Decimal]


class TransferResponse(BaseModel):
    from_member: str = Field(serialization_alias="from")
    to_member: str = Field(serialization_alias="to")
    amount: Decimal


class SettlementResponse(BaseModel):
    group_id: str
    currency: str
    transfers: list[TransferResponse]


class MonthlyStatsResponse(BaseModel):
    year: int
    month: int
    total_amount: Decimal
    count: int


class SettlementStatsResponse(BaseModel):
    group_id: str
    total_amount: Decimal
    count: int
    average_amount: Decimal
    monthly: list[MonthlyStatsResponse]


class MonthlyExpenseResponse(BaseModel):
    year: int
    month: int
    total_amount: Decimal


class ExpenseReportResponse(BaseModel):
    total_amount: Decimal
    count: int
    categories: dict[str, Decimal]
    monthly: list[MonthlyExpenseResponse]
    daily: dict[str, Decimal]


def _expense_report_response(report: ExpenseReport) -> ExpenseReportResponse:
    return ExpenseReportResponse(
        total_amount=from_minor_units(report.total_amount),
        count=report.count,
        categories={total.category: from_minor_units(total.total_amount) for total in report.categories},
        monthly=[
            MonthlyExpenseResponse(
                year=total.year, month=total.month, total_amount=from_minor_units(total.total_amount)
            )
            for total in report.monthly
        ],
        daily={total.day.isoformat(): from_minor_units(total.total_amount) for total in report.daily},
    )


def create_app(session_factory: sessionmaker[Session] | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI) -> AsyncGenerator[None, None]:
        if session_factory is not None:
            fastapi_app.state.sessionmaker = session_factory
            yield
            return

        fastapi_app.state.sessionmaker = create_session_factory(config().database_url)
        yield
        fastapi_app.state.sessionmaker.kw["bind"].dispose()

    fastapi_app = FastAPI(lifespan=lifespan)
    fastapi_app.state.locks = GroupLockRegistry()
    fastapi_app.state.default_currency = config().default_currency

    @fastapi_app.middleware("http")
    async def log_process_time(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        start_time = perf_counter()
        response = await call_next(request)
        process_time = perf_counter() - start_time
        logger.info("Request time: %s %s: %.4fs", request.method, request.url, process_time)
        return response

    @fastapi_app.exception_handler(UnknownGroup)
    async def unknown_group(request: Request, exc: UnknownGroup) -> JSONResponse:
        return JSONResponse(status_code=404, content={"message": str(exc)})

    @fastapi_app.exception_handler(InvalidInput)
    async def invalid_input(request: Request, exc: InvalidInput) -> JSONResponse:
        return JSONResponse(status_code=400, content={"message": str(exc)})

    @fastapi_app.exception_handler(InvariantViolation)
    async def invariant_violation(request: Request, exc: InvariantViolation) -> JSONResponse:
        logger.error("URL: %s | invariant violation: %s", request.url.path, exc)
        return JSONResponse(status_code=500, content={"message": str(exc)})

    @fastapi_app.get("/groups/{group_id}/balances")
    def get_balances(group_id: str, service: LedgerServiceDep) -> BalancesResponse:
        ledger = service.get_ledger(GroupId(group_id))
        return BalancesResponse(
            group_id=ledger.group_id,
            currency=ledger.currency,
            group_total=from_minor_units(ledger.group_total),
            balances={member: from_minor_units(amount) for member, amount in sorted(ledger.balances.items())},
        )

    @fastapi_app.get("/groups/{group_id}/settlement")
    def get_settlement(group_id: str, service: LedgerServiceDep, member: str | None = None) -> SettlementResponse:
        ledger = service.get_ledger(GroupId(group_id))
        if member is None:
            plan = service.settlement_plan(ledger.group_id)
        else:
            plan = instructions_for(service.settlement_plan(ledger.group_id), MemberId(member))
        return SettlementResponse(
            group_id=ledger.group_id,
            currency=ledger.currency,
            transfers=[
                TransferResponse(
                    from_member=instruction.from_member,
                    to_member=instruction.to_member,
                    amount=from_minor_units(instruction.amount),
                )
                for instruction in plan
            ],
        )

    @fastapi_app.get("/groups/{group_id}/settlement-stats")
    def get_settlement_stats(group_id: str, service: LedgerServiceDep) -> SettlementStatsResponse:
        ledger = service.get_ledger(GroupId(group_id))
        stats = service.settlement_stats(ledger.group_id)
        return SettlementStatsResponse(
            group_id=ledger.group_id,
            total_amount=from_minor_units(stats.total_amount),
            count=stats.count,
            average_amount=from_minor_units(stats.average_amount),
            monthly=[
                MonthlyStatsResponse(
                    year=month.year,
                    month=month.month,
                    total_amount=from_minor_units(month.total_amount),
                    count=month.count,
                )
                for month in stats.monthly
            ],
        )

    @fastapi_app.get("/groups/{group_id}/expense-report")
    def get_group_expense_report(group_id: str, service: LedgerServiceDep) -> ExpenseReportResponse:
        return _expense_report_response(service.group_expense_report(GroupId(group_id)))

    @fastapi_app.get("/members/{member}/expense-report")
    def get_member_expense_report(member: str, service: LedgerServiceDep) -> ExpenseReportResponse:
        return _expense_report_response(service.member_expense_report(MemberId(member)))

    return fastapi_app


app = create_app()
