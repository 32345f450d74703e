"""Club-scoped routes: balances, history, policy, meetings and payment reminders."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from filmclub.api.errors import to_http_error
from filmclub.api.proposals import get_service as get_proposal_service
from filmclub.api.schemas import ApprovalPolicyUpdateRequest, PaymentReminderCreateRequest
from filmclub.domain.clubs.service import ClubService
from filmclub.domain.exceptions import FilmclubError
from filmclub.domain.ledger.models import BalanceOverview, PaymentReminder, PaymentReminderPage
from filmclub.domain.ledger.netting import Balance
from filmclub.domain.ledger.service import LedgerService
from filmclub.domain.meetings.models import Meeting
from filmclub.domain.meetings.service import MeetingService
from filmclub.domain.proposals.models import HistoryItem
from filmclub.domain.proposals.service import ProposalService
from filmclub.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/clubs", tags=["clubs"])
# Shared with the proposals router.
_clubs = get_proposal_service().clubs
_meetings = get_proposal_service().meetings
_ledger = LedgerService(clubs=_clubs)


def get_club_service() -> ClubService:
    return _clubs


def get_ledger_service() -> LedgerService:
    return _ledger


def get_meeting_service() -> MeetingService:
    return _meetings


@router.get("/{club_id}/balances", response_model=List[Balance])
async def club_balances(
    club_id: UUID,
    currency: Optional[str] = None,
    auth_user: AuthenticatedUser = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger_service),
):
    try:
        return await ledger.balances(club_id, auth_user.uuid, currency=currency)
    except FilmclubError as exc:
        raise to_http_error(exc) from exc


@router.get("/{club_id}/balance-overview", response_model=BalanceOverview)
async def club_balance_overview(
    club_id: UUID,
    currency: Optional[str] = None,
    auth_user: AuthenticatedUser = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger_service),
):
    try:
        return await ledger.overview(club_id, auth_user.uuid, currency=currency)
    except FilmclubError as exc:
        raise to_http_error(exc) from exc


@router.get("/{club_id}/history", response_model=List[HistoryItem])
async def club_history(
    club_id: UUID,
    limit: Optional[int] = None,
    auth_user: AuthenticatedUser = Depends(get_current_user),
    proposals: ProposalService = Depends(get_proposal_service),
):
    try:
        return await proposals.list_history(club_id, auth_user.uuid, limit=limit)
    except FilmclubError as exc:
        raise to_http_error(exc) from exc


@router.patch("/{club_id}/approval-policy")
async def update_approval_policy(
    club_id: UUID,
    payload: ApprovalPolicyUpdateRequest,
    auth_user: AuthenticatedUser = Depends(get_current_user),
    clubs: ClubService = Depends(get_club_service),
):
    try:
        club = await clubs.update_approval_policy(club_id, auth_user.uuid, payload.as_policy())
    except FilmclubError as exc:
        raise to_http_error(exc) from exc
    return {
        "club_id": str(club.id),
        "approval_policy": club.approval_policy.model_dump(mode="json", by_alias=True, exclude_none=True),
    }


@router.get("/{club_id}/meetings", response_model=List[Meeting])
async def club_meetings(
    club_id: UUID,
    auth_user: AuthenticatedUser = Depends(get_current_user),
    meetings: MeetingService = Depends(get_meeting_service),
):
    try:
        return await meetings.list_meetings(club_id, auth_user.uuid)
    except FilmclubError as exc:
        raise to_http_error(exc) from exc


@router.get("/{club_id}/payment-reminders", response_model=PaymentReminderPage)
async def list_payment_reminders(
    club_id: UUID,
    limit: int = Query(default=20),
    offset: int = Query(default=0),
    to_user_id: Optional[UUID] = Query(default=None, alias="toUserId"),
    auth_user: AuthenticatedUser = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger_service),
):
    try:
        return await ledger.list_payment_reminders(
            club_id, auth_user.uuid, limit=limit, offset=offset, to_user_id=to_user_id
        )
    except FilmclubError as exc:
        raise to_http_error(exc) from exc


@router.post(
    "/{club_id}/payment-reminders",
    response_model=PaymentReminder,
    status_code=status.HTTP_201_CREATED,
)
async def create_payment_reminder(
    club_id: UUID,
    payload: PaymentReminderCreateRequest,
    auth_user: AuthenticatedUser = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger_service),
):
    try:
        return await ledger.create_payment_reminder(
            club_id,
            from_user_id=auth_user.uuid,
            to_user_id=payload.to_user_id,
            currency=payload.currency,
            amount=payload.amount,
            note=payload.note,
        )
    except FilmclubError as exc:
        raise to_http_error(exc) from exc
