"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Summary

REQUEST_COUNTER = Counter(
	"filmclub_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"filmclub_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

PROPOSALS_CREATED = Counter(
	"filmclub_proposals_created_total",
	"Proposals created",
	["entity"],
)

PROPOSAL_VOTES = Counter(
	"filmclub_proposal_votes_total",
	"Votes recorded on proposals",
	["decision"],
)

PROPOSAL_VOTE_REJECTS = Counter(
	"filmclub_proposal_vote_rejects_total",
	"Vote attempts refused",
	["reason"],
)

PROPOSALS_RESOLVED = Counter(
	"filmclub_proposals_resolved_total",
	"Proposals transitioned to a terminal status",
	["entity", "status"],
)

SIDE_EFFECT_FAILURES = Counter(
	"filmclub_side_effect_failures_total",
	"Approved proposals whose side effect could not be applied",
	["entity", "reason"],
)

LEDGER_ENTRIES_WRITTEN = Counter(
	"filmclub_ledger_entries_written_total",
	"Ledger entries appended",
	["source"],
)

MEETINGS_AUTO_STARTED = Counter(
	"filmclub_meetings_auto_started_total",
	"Scheduled meetings started automatically once due",
)

PAYMENT_REMINDERS_CREATED = Counter(
	"filmclub_payment_reminders_created_total",
	"Payment reminders recorded",
)

RATE_LIMITED_EVENTS = Counter(
	"filmclub_rate_limited_total",
	"Requests refused by rate limiting",
	["kind"],
)

DEPENDENCY_UP = Gauge(
	"filmclub_dependency_up",
	"Readiness probe result per backing store (1=up,0=down)",
	["dependency"],
)

DEPENDENCY_LATENCY = Summary(
	"filmclub_dependency_ping_seconds",
	"Readiness probe latency per backing store",
	["dependency"],
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_proposal_created(entity: str) -> None:
	PROPOSALS_CREATED.labels(entity=entity).inc()


def inc_vote(decision: str) -> None:
	PROPOSAL_VOTES.labels(decision=decision).inc()


def inc_vote_reject(reason: str) -> None:
	PROPOSAL_VOTE_REJECTS.labels(reason=reason).inc()


def inc_proposal_resolved(entity: str, status: str) -> None:
	PROPOSALS_RESOLVED.labels(entity=entity, status=status).inc()


def inc_side_effect_failure(entity: str, reason: str) -> None:
	SIDE_EFFECT_FAILURES.labels(entity=entity, reason=reason).inc()


def inc_ledger_entries(source: str, count: int = 1) -> None:
	if count > 0:
		LEDGER_ENTRIES_WRITTEN.labels(source=source).inc(count)


def inc_meeting_auto_started() -> None:
	MEETINGS_AUTO_STARTED.inc()


def inc_payment_reminder() -> None:
	PAYMENT_REMINDERS_CREATED.inc()


def inc_rate_limited(kind: str) -> None:
	RATE_LIMITED_EVENTS.labels(kind=kind).inc()


def mark_dependency(name: str, ok: bool, *, latency_seconds: float | None = None) -> None:
	DEPENDENCY_UP.labels(dependency=name).set(1 if ok else 0)
	if latency_seconds is not None:
		DEPENDENCY_LATENCY.labels(dependency=name).observe(latency_seconds)
