from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Optional
from uuid import UUID

from filmclub.domain.clubs.repo import ClubRepository
from filmclub.domain.clubs.service import ClubService
from filmclub.domain.exceptions import ValidationError
from filmclub.domain.ledger import netting
from filmclub.domain.ledger.models import BalanceOverview, PaymentReminder, PaymentReminderPage
from filmclub.domain.ledger.repo import LedgerRepository
from filmclub.obs import metrics as obs_metrics
from filmclub.obs.logging import get_logger
from filmclub.settings import settings

logger = get_logger(__name__)

REMINDER_MAX_LIMIT = 100


def _normalise_currency(currency: Optional[str]) -> Optional[str]:
    if currency is None:
        return None
    value = currency.strip().upper()
    return value or None


class LedgerService:
    """Read side of the ledger: balances, summaries, the debt matrix and reminders."""

    def __init__(
        self,
        repo: Optional[LedgerRepository] = None,
        clubs: Optional[ClubService] = None,
    ):
        self.repo = repo or LedgerRepository()
        self.clubs = clubs or ClubService(ClubRepository())

    async def _roster(self, club_id: UUID) -> dict[UUID, str]:
        members = await self.clubs.repo.list_members(club_id)
        return {member.user_id: member.display_name for member in members}

    async def balances(
        self, club_id: UUID, actor_user_id: UUID, *, currency: Optional[str] = None
    ) -> list[netting.Balance]:
        await self.clubs.require_member(club_id, actor_user_id)
        currency = _normalise_currency(currency)
        movements = await self.repo.list_movements(club_id, currency=currency)
        return netting.net_balances(
            await self._roster(club_id),
            movements,
            currency=currency,
            default_currency=settings.default_currency,
        )

    async def summary(
        self, club_id: UUID, actor_user_id: UUID, *, currency: Optional[str] = None
    ) -> list[netting.BalanceSummary]:
        return netting.summarize(await self.balances(club_id, actor_user_id, currency=currency))

    async def debt_matrix(
        self, club_id: UUID, actor_user_id: UUID, *, currency: Optional[str] = None
    ) -> list[netting.DebtEdge]:
        await self.clubs.require_member(club_id, actor_user_id)
        currency = _normalise_currency(currency)
        movements = await self.repo.list_movements(club_id, currency=currency)
        return netting.debt_matrix(await self._roster(club_id), movements, currency=currency)

    async def overview(
        self, club_id: UUID, actor_user_id: UUID, *, currency: Optional[str] = None
    ) -> BalanceOverview:
        await self.clubs.require_member(club_id, actor_user_id)
        currency = _normalise_currency(currency)
        roster = await self._roster(club_id)
        movements = await self.repo.list_movements(club_id, currency=currency)
        balances = netting.net_balances(
            roster, movements, currency=currency, default_currency=settings.default_currency
        )
        return BalanceOverview(
            balances=balances,
            summary=netting.summarize(balances),
            matrix=netting.debt_matrix(roster, movements, currency=currency),
        )

    async def create_payment_reminder(
        self,
        club_id: UUID,
        *,
        from_user_id: UUID,
        to_user_id: UUID,
        currency: str,
        amount: Optional[float | Decimal] = None,
        note: Optional[str] = None,
    ) -> PaymentReminder:
        """Record a nudge from a creditor (``from_user_id``) to a debtor (``to_user_id``)."""
        await self.clubs.require_member(club_id, from_user_id)
        if from_user_id == to_user_id:
            raise ValidationError("self_reminder_not_allowed")
        if await self.clubs.repo.get_membership(club_id, to_user_id) is None:
            raise ValidationError("participant_not_member")
        curr = _normalise_currency(currency)
        if curr is None:
            raise ValidationError("invalid_payload")

        movements = await self.repo.list_movements(club_id, currency=curr)
        outstanding = netting.present(
            netting.outstanding_between(movements, debtor=to_user_id, creditor=from_user_id, currency=curr)
        )
        if outstanding <= 0:
            raise ValidationError("no_outstanding_debt")

        if amount is None:
            reminder_amount = outstanding
        else:
            try:
                reminder_amount = netting.present(Decimal(str(amount)))
            except InvalidOperation as exc:
                raise ValidationError("invalid_amount") from exc
            if not reminder_amount.is_finite() or reminder_amount <= 0:
                raise ValidationError("invalid_amount")
        if reminder_amount > outstanding:
            raise ValidationError("amount_exceeds_outstanding")

        reminder = await self.repo.insert_payment_reminder(
            club_id=club_id,
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            currency=curr,
            outstanding_amount=outstanding,
            reminder_amount=reminder_amount,
            note=(note or "").strip() or None,
        )
        obs_metrics.inc_payment_reminder()
        logger.info(
            "payment_reminder_created",
            extra={
                "event": "payment_reminder_created",
                "club_id": str(club_id),
                "reminder_id": str(reminder.id),
                "currency": curr,
            },
        )
        return reminder

    async def list_payment_reminders(
        self,
        club_id: UUID,
        actor_user_id: UUID,
        *,
        limit: int = 20,
        offset: int = 0,
        to_user_id: Optional[UUID] = None,
    ) -> PaymentReminderPage:
        await self.clubs.require_member(club_id, actor_user_id)
        limit = max(1, min(int(limit), REMINDER_MAX_LIMIT))
        offset = max(0, int(offset))
        items, total = await self.repo.list_payment_reminders(
            club_id, limit=limit, offset=offset, to_user_id=to_user_id
        )
        return PaymentReminderPage(items=items, total=total, limit=limit, offset=offset)
