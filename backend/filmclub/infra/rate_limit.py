"""Fixed-window rate limits for proposal creation and voting, counted in Redis."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Optional

from filmclub.domain.exceptions import RateLimitedError
from filmclub.infra.redis import redis_client
from filmclub.obs import metrics as obs_metrics


@dataclass(frozen=True, slots=True)
class WindowHit:
	count: int
	limit: int
	retry_after: int

	@property
	def allowed(self) -> bool:
		return self.count <= self.limit


async def hit(
	kind: str,
	actor_id: str,
	*,
	limit: int,
	window_seconds: int = 60,
	now: Optional[float] = None,
) -> WindowHit:
	"""Count one request against ``actor_id``'s budget for ``kind`` in the current window."""
	now = time.time() if now is None else now
	window = max(1, int(window_seconds))
	slot = int(math.floor(now / window))
	retry_after = max(1, math.ceil((slot + 1) * window - now))
	if limit <= 0:
		return WindowHit(count=1, limit=0, retry_after=retry_after)
	key = f"rl:{kind}:{actor_id}:{slot}:{window}"
	async with redis_client.pipeline(transaction=True) as pipe:
		pipe.incr(key)
		pipe.expire(key, window)
		count, _ = await pipe.execute()
	return WindowHit(count=int(count), limit=limit, retry_after=retry_after)


async def allow(
	kind: str,
	actor_id: str,
	*,
	limit: int,
	window_seconds: int = 60,
	now: Optional[float] = None,
) -> bool:
	"""Return True when the operation is still within the allowed budget."""
	result = await hit(kind, actor_id, limit=limit, window_seconds=window_seconds, now=now)
	return result.allowed


async def enforce(kind: str, actor_id: str, *, limit: int, window_seconds: int = 60) -> None:
	result = await hit(kind, actor_id, limit=limit, window_seconds=window_seconds)
	if not result.allowed:
		obs_metrics.inc_rate_limited(kind)
		raise RateLimitedError(f"{kind}_rate_limited", retry_after=result.retry_after)
