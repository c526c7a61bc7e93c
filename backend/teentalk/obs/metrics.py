"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Summary

REQUEST_COUNTER = Counter(
	"teentalk_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"teentalk_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

TRUST_DELTAS_TOTAL = Counter(
	"teentalk_trust_deltas_total",
	"Trust score deltas applied",
	["reason"],
)

TRUST_LEVEL_CHANGES_TOTAL = Counter(
	"teentalk_trust_level_changes_total",
	"Trust level transitions caused by applied deltas",
	["from_level", "to_level"],
)

MOD_REPORTS_TOTAL = Counter(
	"teentalk_mod_reports_total",
	"Report events processed by the escalation engine",
	["reason"],
)

MOD_CONTENT_HIDDEN_TOTAL = Counter(
	"teentalk_mod_content_hidden_total",
	"Content auto-hidden after crossing the report threshold",
	["content_type"],
)

MOD_RESOLUTIONS_TOTAL = Counter(
	"teentalk_mod_resolutions_total",
	"Administrative moderation resolutions",
	["action"],
)

STORE_TX_CONFLICTS_TOTAL = Counter(
	"teentalk_store_tx_conflicts_total",
	"Document store transaction conflicts observed",
)

STORE_TX_EXHAUSTED_TOTAL = Counter(
	"teentalk_store_tx_exhausted_total",
	"Document store transactions that ran out of retry attempts",
)

NOTIFICATIONS_TOTAL = Counter(
	"teentalk_notifications_total",
	"Push notification deliveries by outcome",
	["outcome"],
)

REDIS_UP = Gauge("teentalk_redis_up", "Redis availability (1=up,0=down)")
REDIS_LATENCY = Summary("teentalk_redis_latency_seconds", "Redis ping latency (seconds)")

POSTGRES_UP = Gauge("teentalk_postgres_up", "Postgres availability (1=up,0=down)")
POSTGRES_LATENCY = Summary("teentalk_postgres_latency_seconds", "Postgres ping latency (seconds)")


def inc_notification(outcome: str, amount: int = 1) -> None:
	if amount <= 0:
		return
	NOTIFICATIONS_TOTAL.labels(outcome=outcome).inc(amount)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)


def mark_postgres(ok: bool, *, latency_seconds: float | None = None) -> None:
	POSTGRES_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		POSTGRES_LATENCY.observe(latency_seconds)
