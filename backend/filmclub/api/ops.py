"""Liveness, readiness and the Prometheus scrape endpoint."""

from __future__ import annotations

import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from filmclub.obs import health
from filmclub.settings import settings

router = APIRouter(tags=["ops"])


def _presented_token(x_admin_token: Optional[str], authorization: Optional[str]) -> Optional[str]:
	if x_admin_token:
		return x_admin_token
	scheme, _, credentials = (authorization or "").partition(" ")
	if scheme.lower() == "bearer" and credentials:
		return credentials.strip()
	return None


async def require_metrics_access(
	x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> None:
	"""Metrics are public unless OBS_METRICS_PUBLIC is off; then the admin token is required."""
	if settings.obs_metrics_public:
		return
	expected = settings.obs_admin_token
	presented = _presented_token(x_admin_token, authorization)
	if not expected or presented is None or not hmac.compare_digest(presented, expected):
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="forbidden")


@router.get("/health")
async def health_live() -> dict[str, str]:
	return {"status": "ok", "service": settings.service_name}


@router.get("/health/ready")
async def health_ready() -> Response:
	status_code, payload = await health.readiness()
	return JSONResponse(content=payload, status_code=status_code)


@router.get("/metrics")
async def prometheus_metrics(_: None = Depends(require_metrics_access)) -> Response:
	return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
