"""Proposed change routes: creation, voting, evaluation and reads."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from filmclub.api.errors import to_http_error
from filmclub.api.schemas import FoodOrderCreateRequest, ProposalCreateRequest
from filmclub.domain.exceptions import FilmclubError
from filmclub.domain.proposals.models import ProposalWithVotes, ProposedChange, VoteDecision
from filmclub.domain.proposals.service import ProposalService
from filmclub.infra import rate_limit
from filmclub.infra.auth import AuthenticatedUser, get_current_user
from filmclub.settings import settings

router = APIRouter(tags=["proposals"])
_service = ProposalService()


def get_service() -> ProposalService:
    return _service


@router.get("/proposed-changes", response_model=List[ProposedChange])
async def list_proposed_changes(
    club_id: Optional[UUID] = Query(default=None, alias="clubId"),
    status_filter: Optional[str] = Query(default=None, alias="status"),
    auth_user: AuthenticatedUser = Depends(get_current_user),
    service: ProposalService = Depends(get_service),
):
    try:
        return await service.list_proposals(auth_user.uuid, club_id=club_id, status=status_filter)
    except FilmclubError as exc:
        raise to_http_error(exc) from exc


@router.post("/proposed-changes", response_model=ProposalWithVotes, status_code=status.HTTP_201_CREATED)
async def create_proposed_change(
    payload: ProposalCreateRequest,
    auth_user: AuthenticatedUser = Depends(get_current_user),
    service: ProposalService = Depends(get_service),
):
    try:
        await rate_limit.enforce("proposal", auth_user.id, limit=settings.proposal_rate_limit_per_minute)
        return await service.create_proposal(payload.club_id, auth_user.uuid, payload.entity, payload.payload)
    except FilmclubError as exc:
        raise to_http_error(exc) from exc


@router.post("/food-orders", response_model=ProposalWithVotes, status_code=status.HTTP_201_CREATED)
async def create_food_order(
    payload: FoodOrderCreateRequest,
    auth_user: AuthenticatedUser = Depends(get_current_user),
    service: ProposalService = Depends(get_service),
):
    try:
        await rate_limit.enforce("proposal", auth_user.id, limit=settings.proposal_rate_limit_per_minute)
        return await service.create_food_order_proposal(
            payload.club_id,
            auth_user.uuid,
            vendor=payload.vendor,
            total_cost=payload.total_cost,
            currency=payload.currency,
            payer_user_id=payload.payer_user_id,
            participant_user_ids=payload.participant_user_ids,
        )
    except FilmclubError as exc:
        raise to_http_error(exc) from exc


@router.get("/proposed-changes/{proposal_id}", response_model=ProposalWithVotes)
async def get_proposed_change(
    proposal_id: UUID,
    auth_user: AuthenticatedUser = Depends(get_current_user),
    service: ProposalService = Depends(get_service),
):
    try:
        return await service.get_proposal_with_votes(proposal_id, auth_user.uuid)
    except FilmclubError as exc:
        raise to_http_error(exc) from exc


async def _vote(service: ProposalService, proposal_id: UUID, auth_user: AuthenticatedUser, decision: VoteDecision):
    try:
        await rate_limit.enforce("vote", auth_user.id, limit=settings.vote_rate_limit_per_minute)
        return await service.cast_vote(proposal_id, auth_user.uuid, decision)
    except FilmclubError as exc:
        raise to_http_error(exc) from exc


@router.post("/proposed-changes/{proposal_id}/approve", response_model=ProposalWithVotes)
async def approve_proposed_change(
    proposal_id: UUID,
    auth_user: AuthenticatedUser = Depends(get_current_user),
    service: ProposalService = Depends(get_service),
):
    return await _vote(service, proposal_id, auth_user, VoteDecision.APPROVE)


@router.post("/proposed-changes/{proposal_id}/reject", response_model=ProposalWithVotes)
async def reject_proposed_change(
    proposal_id: UUID,
    auth_user: AuthenticatedUser = Depends(get_current_user),
    service: ProposalService = Depends(get_service),
):
    return await _vote(service, proposal_id, auth_user, VoteDecision.REJECT)


@router.post("/proposed-changes/{proposal_id}/evaluate", response_model=ProposalWithVotes)
async def evaluate_proposed_change(
    proposal_id: UUID,
    auth_user: AuthenticatedUser = Depends(get_current_user),
    service: ProposalService = Depends(get_service),
):
    try:
        return await service.evaluate(proposal_id, auth_user.uuid)
    except FilmclubError as exc:
        raise to_http_error(exc) from exc
