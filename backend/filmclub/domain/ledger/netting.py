"""Pure arithmetic behind club balances.

Amounts stay ``Decimal`` from the database up to the presentation step; only
``present`` rounds, so repeated netting never compounds rounding error. Food
order splitting works in integer cents.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping, Optional, Sequence
from uuid import UUID

CENT = Decimal("0.01")


def to_cents(amount: float | Decimal | str) -> int:
    """Convert a major-unit amount to integer cents, rounding half up."""
    value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def present(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def split_cents(total_cents: int, parts: int) -> list[int]:
    """Split ``total_cents`` into ``parts`` shares that sum to it exactly.

    The remainder goes one cent at a time to the first shares, so
    ``split_cents(1000, 3) == [334, 333, 333]``.
    """
    if parts <= 0:
        raise ValueError("parts must be positive")
    base, remainder = divmod(total_cents, parts)
    return [base + 1 if index < remainder else base for index in range(parts)]


@dataclass(frozen=True)
class Movement:
    """Money owed from ``from_user_id`` (debtor) to ``to_user_id`` (creditor)."""

    from_user_id: UUID
    to_user_id: UUID
    currency: str
    amount: Decimal


@dataclass(frozen=True)
class Balance:
    user_id: UUID
    display_name: str
    currency: str
    net_amount: Decimal


@dataclass(frozen=True)
class BalanceSummary:
    user_id: UUID
    display_name: str
    currency: str
    owes: Decimal
    owed: Decimal


@dataclass(frozen=True)
class DebtEdge:
    from_user_id: UUID
    from_display_name: str
    to_user_id: UUID
    to_display_name: str
    currency: str
    amount: Decimal


def _currencies(movements: Sequence[Movement], currency: Optional[str], default_currency: str) -> list[str]:
    if currency:
        return [currency.upper()]
    seen = list(dict.fromkeys(movement.currency for movement in movements))
    return sorted(seen) if seen else [default_currency]


def net_balances(
    members: Mapping[UUID, str],
    movements: Iterable[Movement],
    *,
    currency: Optional[str] = None,
    default_currency: str = "EUR",
) -> list[Balance]:
    """One row per (member, currency): what the member is owed minus what they owe.

    ``members`` maps user id to display name in roster order. Members without
    ledger activity report zero. Former members still holding entries are not
    listed, but their entries still count toward their counterparties.
    """
    movements = [m for m in movements if not currency or m.currency == currency.upper()]
    totals: dict[tuple[UUID, str], Decimal] = defaultdict(Decimal)
    for movement in movements:
        totals[(movement.to_user_id, movement.currency)] += movement.amount
        totals[(movement.from_user_id, movement.currency)] -= movement.amount

    balances: list[Balance] = []
    for user_id, display_name in members.items():
        for curr in _currencies(movements, currency, default_currency):
            balances.append(
                Balance(
                    user_id=user_id,
                    display_name=display_name,
                    currency=curr,
                    net_amount=present(totals.get((user_id, curr), Decimal(0))),
                )
            )
    return balances


def summarize(balances: Iterable[Balance]) -> list[BalanceSummary]:
    zero = Decimal("0.00")
    return [
        BalanceSummary(
            user_id=balance.user_id,
            display_name=balance.display_name,
            currency=balance.currency,
            owes=-balance.net_amount if balance.net_amount < 0 else zero,
            owed=balance.net_amount if balance.net_amount > 0 else zero,
        )
        for balance in balances
    ]


def debt_matrix(
    members: Mapping[UUID, str],
    movements: Iterable[Movement],
    *,
    currency: Optional[str] = None,
) -> list[DebtEdge]:
    """Net every pair's bidirectional flow down to at most one directed edge.

    If A owes B 30 and B owes A 10 the result is the single edge A -> B 20.
    Pairs that cancel out are omitted. Edges are ordered by currency and then by
    the order in which each pair first appears in ``movements``.
    """
    pair_totals: dict[tuple[str, UUID, UUID], Decimal] = {}
    for movement in movements:
        if currency and movement.currency != currency.upper():
            continue
        if movement.from_user_id == movement.to_user_id:
            continue
        low, high = sorted((movement.from_user_id, movement.to_user_id), key=str)
        key = (movement.currency, low, high)
        # Positive means low owes high.
        signed = movement.amount if movement.from_user_id == low else -movement.amount
        pair_totals[key] = pair_totals.get(key, Decimal(0)) + signed

    edges: list[DebtEdge] = []
    for (curr, low, high), net in pair_totals.items():
        amount = present(abs(net))
        if amount == 0:
            continue
        debtor, creditor = (low, high) if net > 0 else (high, low)
        edges.append(
            DebtEdge(
                from_user_id=debtor,
                from_display_name=members.get(debtor, str(debtor)),
                to_user_id=creditor,
                to_display_name=members.get(creditor, str(creditor)),
                currency=curr,
                amount=amount,
            )
        )
    edges.sort(key=lambda edge: edge.currency)
    return edges


def outstanding_between(movements: Iterable[Movement], *, debtor: UUID, creditor: UUID, currency: str) -> Decimal:
    """What ``debtor`` still owes ``creditor`` in ``currency`` after netting both directions."""
    total = Decimal(0)
    for movement in movements:
        if movement.currency != currency:
            continue
        if movement.from_user_id == debtor and movement.to_user_id == creditor:
            total += movement.amount
        elif movement.from_user_id == creditor and movement.to_user_id == debtor:
            total -= movement.amount
    return total
