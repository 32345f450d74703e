"""Tagged outcome of applying an approved proposal's side effect."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID


@dataclass(frozen=True, slots=True)
class EffectResult:
	"""Either ``result_id`` (the row the effect created or touched) or ``error``.

	Handlers return this instead of raising so the caller decides what a failed
	effect means for the surrounding transaction.
	"""

	result_id: Optional[UUID] = None
	error: Optional[str] = None

	@property
	def ok(self) -> bool:
		return self.error is None

	@classmethod
	def applied(cls, result_id: Optional[UUID] = None) -> "EffectResult":
		return cls(result_id=result_id)

	@classmethod
	def failed(cls, error: str) -> "EffectResult":
		return cls(error=error)
