"""FastAPI routers for the club decision engine."""

from __future__ import annotations

from fastapi import APIRouter

from filmclub.api import clubs, proposals

router = APIRouter(prefix="/v1")

router.include_router(proposals.router)
router.include_router(clubs.router)

__all__ = ["router"]
