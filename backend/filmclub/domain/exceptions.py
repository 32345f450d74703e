"""Custom exceptions for the club decision engine.

Every failure the engine expects carries a stable ``detail`` code; callers
branch on the exception class (or the code) rather than on message text.
"""

from __future__ import annotations

from fastapi import status

if hasattr(status, "HTTP_422_UNPROCESSABLE_CONTENT"):
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_CONTENT
else:  # pragma: no cover - older Starlette builds
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_ENTITY


class FilmclubError(Exception):
	"""Base class for domain errors."""

	status_code: int = status.HTTP_400_BAD_REQUEST
	detail: str = "filmclub_error"

	def __init__(self, detail: str | None = None) -> None:
		super().__init__(detail or self.detail)
		if detail:
			self.detail = detail


class NotFoundError(FilmclubError):
	"""Thrown when a resource is not visible or missing."""

	status_code = status.HTTP_404_NOT_FOUND
	detail = "not_found"


class ForbiddenError(FilmclubError):
	"""Raised when the caller may not act on the club."""

	status_code = status.HTTP_403_FORBIDDEN
	detail = "forbidden"


class ConflictError(FilmclubError):
	"""Raised for state conflicts such as duplicate votes or resolved proposals."""

	status_code = status.HTTP_409_CONFLICT
	detail = "conflict"


class ValidationError(FilmclubError):
	"""Raised for payload or policy errors not covered by request schema validation."""

	status_code = _HTTP_422
	detail = "validation_error"


class RateLimitedError(FilmclubError):
	status_code = status.HTTP_429_TOO_MANY_REQUESTS
	detail = "rate_limited"

	def __init__(self, detail: str | None = None, *, retry_after: int | None = None) -> None:
		super().__init__(detail)
		self.retry_after = retry_after
		if retry_after is not None:
			self.headers = {"Retry-After": str(retry_after)}


class InvalidExecutionPayload(ValidationError):
	"""Raised when an approved proposal's side effect cannot be applied.

	``reason`` keeps the applicator's own error code (``payer_not_member``,
	``meeting_not_active`` ...) for logging; the public detail stays generic.
	"""

	detail = "invalid_execution_payload"

	def __init__(self, reason: str) -> None:
		super().__init__(self.detail)
		self.reason = reason
