"""Readiness probes for the two stores the engine depends on.

Postgres holds every proposal and ledger row; Redis only backs the vote and
proposal rate limits, so a Redis outage degrades readiness without failing it.
"""

from __future__ import annotations

import asyncio
from time import perf_counter
from typing import Any, Awaitable, Callable, Dict, Tuple

from filmclub.infra import postgres
from filmclub.infra.redis import redis_client
from filmclub.obs import metrics
from filmclub.obs.logging import get_logger

logger = get_logger(__name__)

Probe = Callable[[], Awaitable[None]]


async def _ping_postgres() -> None:
	pool = await postgres.get_pool()
	async with pool.acquire() as conn:
		await conn.execute("SELECT 1")


async def _ping_redis() -> None:
	await redis_client.ping()


# name -> (probe, timeout seconds, required for readiness)
PROBES: Dict[str, Tuple[Probe, float, bool]] = {
	"postgres": (_ping_postgres, 0.5, True),
	"redis": (_ping_redis, 0.2, False),
}


async def check(name: str) -> Dict[str, Any]:
	probe, timeout, _ = PROBES[name]
	start = perf_counter()
	try:
		await asyncio.wait_for(probe(), timeout=timeout)
	except Exception as exc:
		metrics.mark_dependency(name, False)
		logger.warning("dependency_unavailable", extra={"dependency": name, "error": str(exc)})
		return {"ok": False, "error": str(exc)}
	latency = perf_counter() - start
	metrics.mark_dependency(name, True, latency_seconds=latency)
	return {"ok": True, "latency_ms": round(latency * 1000, 2)}


async def readiness() -> Tuple[int, Dict[str, Any]]:
	results = dict(zip(PROBES, await asyncio.gather(*(check(name) for name in PROBES))))
	ready = all(results[name]["ok"] for name, (_, _, required) in PROBES.items() if required)
	degraded = not all(result["ok"] for result in results.values())
	status = "ok" if not degraded else ("degraded" if ready else "unavailable")
	return (200 if ready else 503), {"status": status, "checks": results}
