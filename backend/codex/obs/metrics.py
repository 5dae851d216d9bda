"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNTER = Counter(
	"codex_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"codex_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

CONTENT_SUBMISSIONS_TOTAL = Counter(
	"codex_content_submissions_total",
	"User submissions created",
	["content_type", "status"],
)

CONTENT_TRANSITIONS_TOTAL = Counter(
	"codex_content_transitions_total",
	"Committed moderation status transitions",
	["content_type", "transition"],
)

CONTENT_TRANSITION_REJECTS_TOTAL = Counter(
	"codex_content_transition_rejects_total",
	"Moderation transitions refused before any mutation",
	["content_type", "reason"],
)

SPOILER_REDACTIONS_TOTAL = Counter(
	"codex_spoiler_redactions_total",
	"Items replaced by a spoiler placeholder",
	["content_type"],
)

SPOILER_MALFORMED_TOTAL = Counter(
	"codex_spoiler_malformed_total",
	"Items seen with invalid spoiler metadata",
)

PAGE_VIEWS_TOTAL = Counter(
	"codex_page_views_total",
	"Page view record requests",
	["page_type", "result"],
)

VIEW_TRACKER_ROLLBACKS_TOTAL = Counter(
	"codex_view_tracker_rollbacks_total",
	"Client view records rolled back after a failed call",
	["page_type"],
)

LIKE_TOGGLES_TOTAL = Counter(
	"codex_like_toggles_total",
	"Like toggles by direction",
	["content_type", "direction"],
)

AGGREGATE_CATEGORY_FAILURES_TOTAL = Counter(
	"codex_aggregate_category_failures_total",
	"Contribution aggregate categories that could not be loaded",
	["category"],
)

AUDIT_WRITE_FAILURES_TOTAL = Counter(
	"codex_audit_write_failures_total",
	"Audit stream appends that failed after commit",
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_submission(content_type: str, status: str) -> None:
	CONTENT_SUBMISSIONS_TOTAL.labels(content_type=content_type, status=status).inc()


def inc_transition(content_type: str, source: str, target: str) -> None:
	CONTENT_TRANSITIONS_TOTAL.labels(content_type=content_type, transition=f"{source}->{target}").inc()


def inc_transition_reject(content_type: str, reason: str) -> None:
	CONTENT_TRANSITION_REJECTS_TOTAL.labels(content_type=content_type, reason=reason).inc()


def inc_spoiler_redaction(content_type: str) -> None:
	SPOILER_REDACTIONS_TOTAL.labels(content_type=content_type).inc()


def inc_spoiler_malformed() -> None:
	SPOILER_MALFORMED_TOTAL.inc()


def inc_page_view(page_type: str, result: str) -> None:
	PAGE_VIEWS_TOTAL.labels(page_type=page_type, result=result).inc()


def inc_view_rollback(page_type: str) -> None:
	VIEW_TRACKER_ROLLBACKS_TOTAL.labels(page_type=page_type).inc()


def inc_like_toggle(content_type: str, liked: bool) -> None:
	LIKE_TOGGLES_TOTAL.labels(content_type=content_type, direction="like" if liked else "unlike").inc()


def inc_aggregate_failure(category: str) -> None:
	AGGREGATE_CATEGORY_FAILURES_TOTAL.labels(category=category).inc()


def inc_audit_failure() -> None:
	AUDIT_WRITE_FAILURES_TOTAL.inc()
