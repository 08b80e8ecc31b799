from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Sequence

from config import config
from db.db import create_session_factory
from domain.base_types import GroupId, MemberId
from domain.ledger import ExpenseShare
from domain.money import Currency
from importers.activity_csv import load_group_activity
from services.ledger_service import LedgerService
from utils.expense_summary import render_expense_report
from utils.formatting import format_currency, format_signed_currency
from utils.settlement_summary import render_balances, render_settlement_plan

logger = logging.getLogger(__name__)


def run(csv_path: Path, *, group_id: GroupId, currency: Currency, database_url: str, member: MemberId | None) -> None:
    # Setup components
    session_factory = create_session_factory(database_url, reset=True)
    service = LedgerService(session_factory, default_currency=currency)
    service.open_group(group_id, currency)

    # Replay activity
    activities = load_group_activity(csv_path)
    for activity in activities:
        if isinstance(activity, ExpenseShare):
            service.record_expense(group_id, activity)
        else:
            service.record_payment(group_id, activity)

    # Print summary
    ledger = service.get_ledger(group_id)
    print(f"Replayed {len(activities)} activity rows from {csv_path}")
    print(f"Group total: {format_currency(ledger.group_total, currency)}")
    render_expense_report(service.group_expense_report(group_id), currency=currency)
    render_balances(ledger.balances, currency=currency)
    render_settlement_plan(service.settlement_plan(group_id), currency=currency)

    if member is not None:
        position = service.member_view(group_id, member)
        print(f"Position of {member}: {format_signed_currency(position.net_balance, currency)}")
        print(f"  pays:     {format_currency(position.total_to_pay, currency)}")
        print(f"  receives: {format_currency(position.total_to_receive, currency)}")


def main(argv: Sequence[str] | None = None) -> None:
    settings = config()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    parser = argparse.ArgumentParser(description="Replay a group's expenses and payments and print who owes whom.")
    parser.add_argument("--csv", type=Path, default=Path("data/group-activity.csv"))
    parser.add_argument("--group", default="default")
    parser.add_argument("--currency", type=Currency, choices=list(Currency), default=settings.default_currency)
    parser.add_argument("--database-url", default="sqlite:///:memory:")
    parser.add_argument("--member", default=None, help="Also show the position of this member")
    args = parser.parse_args(argv)
    run(
        args.csv,
        group_id=GroupId(args.group),
        currency=args.currency,
        database_url=args.database_url,
        member=MemberId(args.member) if args.member else None,
    )


if __name__ == "__main__":
    main()
