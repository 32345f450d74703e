"""Request identity for FastAPI endpoints.

Session and credential issuance live in the upstream gateway; by the time a
request reaches this service the caller's user id is carried in the
``X-User-Id`` header.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Header, HTTPException, status


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	display_name: Optional[str] = None

	@property
	def uuid(self) -> UUID:
		return UUID(self.id)


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_name: Optional[str] = Header(default=None, alias="X-User-Name"),
) -> AuthenticatedUser:
	"""Resolve the caller from gateway headers, rejecting missing or malformed ids."""
	raw = (x_user_id or "").strip()
	if not raw:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")
	try:
		UUID(raw)
	except ValueError:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_identity")
	return AuthenticatedUser(id=raw, display_name=(x_user_name or "").strip() or None)
