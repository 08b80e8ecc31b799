"""Domain models and rules for the group balance ledger.

This package holds the in-memory balance vector, the rules that mutate it and
the settlement planner. Nothing here touches persistence, so business logic and
tests do not depend on a database.
"""

__all__ = [
    "expense_record",
    "group_ledger",
    "ledger",
    "money",
    "settlement",
    "settlement_record",
]
