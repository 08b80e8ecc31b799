from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping

from pydantic import BaseModel, ConfigDict

from .base_types import MemberId
from .errors import InvalidInput, InvariantViolation

logger = logging.getLogger(__name__)


def validate_member_id(member: object) -> MemberId:
    if not isinstance(member, str) or not member or member != member.strip():
        raise InvalidInput(f"Malformed member identifier {member!r}")
    return MemberId(member)


def validate_amount(amount: object, *, field: str = "amount") -> int:
    # bool is an int subclass; True must not be accepted as one cent.
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidInput(f"{field} must be an integer number of minor units, got {amount!r}")
    if amount <= 0:
        raise InvalidInput(f"{field} must be > 0, got {amount}")
    return amount


class BalanceVector(Mapping[MemberId, int]):
    """Signed per-member balances of one group, in minor units.

    Positive balance: the group owes the member. Negative balance: the member
    owes the group. Values always sum to zero and zero entries are never kept.

    The vector is read-only to callers; it changes only through the mutation
    functions in this module.
    """

    __slots__ = ("_balances",)

    def __init__(self) -> None:
        self._balances: dict[MemberId, int] = {}

    @classmethod
    def from_mapping(cls, raw: Mapping[str, object] | None) -> BalanceVector:
        """Build a vector from persisted or external data.

        ``None`` and empty mappings give an empty vector. Anything else must be
        well formed and balanced; it is never patched up.
        """
        vector = cls()
        if not raw:
            return vector

        balances: dict[MemberId, int] = {}
        for member, amount in raw.items():
            member_id = validate_member_id(member)
            if isinstance(amount, bool) or not isinstance(amount, int):
                raise InvalidInput(f"Balance of {member_id} must be integer minor units, got {amount!r}")
            if amount != 0:
                balances[member_id] = amount

        residual = sum(balances.values())
        if residual != 0:
            logger.error("Refusing unbalanced balance vector: %s", balances)
            raise InvariantViolation("Balance vector does not sum to zero", residual=residual)

        vector._balances = balances
        return vector

    def __getitem__(self, member: MemberId) -> int:
        return self._balances[member]

    def __iter__(self) -> Iterator[MemberId]:
        return iter(self._balances)

    def __len__(self) -> int:
        return len(self._balances)

    def __repr__(self) -> str:
        return f"BalanceVector({self._balances!r})"

    def balance_of(self, member: str) -> int:
        return self._balances.get(MemberId(member), 0)

    def total(self) -> int:
        return sum(self._balances.values())

    def snapshot(self) -> dict[MemberId, int]:
        return dict(self._balances)

    def copy(self) -> BalanceVector:
        clone = BalanceVector()
        clone._balances = dict(self._balances)
        return clone


class ExpenseShare(BaseModel):
    """``owner`` paid ``total_amount`` to be split evenly among ``participants``.

    The owner may or may not be one of the participants.
    """

    model_config = ConfigDict(frozen=True)

    owner: MemberId
    total_amount: int
    participants: frozenset[MemberId]


class PaymentEvent(BaseModel):
    """A confirmed transfer of ``amount`` from ``payer`` to ``payee``.

    Checked when applied, by :func:`apply_payment`.
    """

    model_config = ConfigDict(frozen=True)

    payer: MemberId
    payee: MemberId
    amount: int


def apply_expense(
    vector: BalanceVector,
    *,
    owner: str,
    total_amount: int,
    participants: Iterable[str],
) -> None:
    owner_id, total, members = _validate_expense(owner, total_amount, participants)
    working = _working_copy(vector, "apply_expense")
    _split(working, owner_id, total, members, sign=1)
    _commit(vector, working, "apply_expense")
    logger.debug("Applied expense owner=%s total=%d participants=%d", owner_id, total, len(members))


def reverse_expense(
    vector: BalanceVector,
    *,
    owner: str,
    total_amount: int,
    participants: Iterable[str],
) -> None:
    """Exact inverse of :func:`apply_expense` for the same arguments."""
    owner_id, total, members = _validate_expense(owner, total_amount, participants)
    working = _working_copy(vector, "reverse_expense")
    _split(working, owner_id, total, members, sign=-1)
    _commit(vector, working, "reverse_expense")
    logger.debug("Reversed expense owner=%s total=%d participants=%d", owner_id, total, len(members))


def edit_expense(vector: BalanceVector, *, old: ExpenseShare, new: ExpenseShare) -> None:
    """Replace ``old`` by ``new`` as one step; the vector is never left half-edited."""
    old_args = _validate_expense(old.owner, old.total_amount, old.participants)
    new_args = _validate_expense(new.owner, new.total_amount, new.participants)
    working = _working_copy(vector, "edit_expense")
    _split(working, *old_args, sign=-1)
    _split(working, *new_args, sign=1)
    _commit(vector, working, "edit_expense")
    logger.debug(
        "Edited expense owner=%s total=%d -> owner=%s total=%d",
        old.owner,
        old.total_amount,
        new.owner,
        new.total_amount,
    )


def apply_payment(vector: BalanceVector, *, payer: str, payee: str, amount: int) -> None:
    """Record that ``payer`` handed ``amount`` to ``payee``.

    The payer's balance rises by ``amount`` and the payee's falls by it, so a
    debtor paying a creditor moves both toward zero. The direction is not
    checked against who owes whom; that is the caller's policy.
    """
    payer_id = validate_member_id(payer)
    payee_id = validate_member_id(payee)
    if payer_id == payee_id:
        raise InvalidInput(f"Member {payer_id} cannot pay themselves")
    value = validate_amount(amount)

    working = _working_copy(vector, "apply_payment")
    working[payer_id] = working.get(payer_id, 0) + value
    working[payee_id] = working.get(payee_id, 0) - value
    _commit(vector, working, "apply_payment")
    logger.debug("Applied payment payer=%s payee=%s amount=%d", payer_id, payee_id, value)


def prune_zero(vector: BalanceVector) -> None:
    vector._balances = {member: amount for member, amount in vector._balances.items() if amount != 0}


def _validate_expense(
    owner: str, total_amount: int, participants: Iterable[str]
) -> tuple[MemberId, int, frozenset[MemberId]]:
    owner_id = validate_member_id(owner)
    total = validate_amount(total_amount, field="total_amount")
    if isinstance(participants, str):
        raise InvalidInput("participants must be a collection of member identifiers, not a string")
    members = frozenset(validate_member_id(member) for member in participants)
    if not members:
        raise InvalidInput("Expense must have at least one participant")
    return owner_id, total, members


def _split(
    working: dict[MemberId, int],
    owner: MemberId,
    total: int,
    participants: frozenset[MemberId],
    *,
    sign: int,
) -> None:
    share = total // len(participants)
    working[owner] = working.get(owner, 0) + sign * total
    for member in participants:
        working[member] = working.get(member, 0) - sign * share

    # Whatever the even shares did not cover stays with the owner.
    residual = sum(working.values())
    working[owner] -= residual


def _working_copy(vector: BalanceVector, operation: str) -> dict[MemberId, int]:
    residual = vector.total()
    if residual != 0:
        logger.error("%s: balance vector is unbalanced before mutation: %s", operation, vector.snapshot())
        raise InvariantViolation(f"{operation}: balance vector does not sum to zero", residual=residual)
    return vector.snapshot()


def _commit(vector: BalanceVector, working: dict[MemberId, int], operation: str) -> None:
    residual = sum(working.values())
    if residual != 0:
        logger.error("%s: mutation left residual %d, vector not updated", operation, residual)
        raise InvariantViolation(f"{operation}: mutation broke the zero-sum invariant", residual=residual)
    vector._balances = working
    prune_zero(vector)
