from typing import Annotated

from fastapi import Depends, Request

from services.ledger_service import LedgerService


def get_ledger_service(request: Request) -> LedgerService:
    return LedgerService(
        request.app.state.sessionmaker,
        locks=request.app.state.locks,
        default_currency=request.app.state.default_currency,
    )


LedgerServiceDep = Annotated[LedgerService, Depends(get_ledger_service)]
