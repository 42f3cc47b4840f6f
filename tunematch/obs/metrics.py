"""Central registry for Prometheus metrics used across the matching service."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNTER = Counter(
	"tunematch_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"tunematch_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

DISCOVERY_REQUESTS = Counter(
	"tunematch_discovery_requests_total",
	"Discovery pool builds by outcome",
	["outcome"],
)

DISCOVERY_LATENCY = Histogram(
	"tunematch_discovery_duration_seconds",
	"Time spent assembling a discovery pool",
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

DISCOVERY_CANDIDATES = Histogram(
	"tunematch_discovery_candidates",
	"Candidates returned per discovery request",
	buckets=(0, 1, 3, 5, 10, 15),
)

DISCOVERY_DROPPED = Counter(
	"tunematch_discovery_dropped_total",
	"Posts dropped while assembling the discovery pool",
	["reason"],
)

SWIPES_RECORDED = Counter(
	"tunematch_swipes_total",
	"Swipes recorded by direction",
	["direction"],
)

MATCH_RESULTS = Counter(
	"tunematch_match_attempts_total",
	"Reciprocal likes resolved into a match",
	["result"],
)

PREFERENCE_REFRESHES = Counter(
	"tunematch_preference_refresh_total",
	"Taste-vector refreshes by result",
	["result"],
)

EXPIRED_POSTS = Counter(
	"tunematch_expired_posts_deleted_total",
	"Posts removed by the expiry job",
)

JOB_RUNS = Counter(
	"tunematch_job_runs_total",
	"Maintenance job runs by job and result",
	["name", "result"],
)

JOB_DURATION = Histogram(
	"tunematch_job_duration_seconds",
	"Maintenance job duration",
	["name"],
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def observe_discovery(outcome: str, elapsed_seconds: float, returned: int) -> None:
	DISCOVERY_REQUESTS.labels(outcome=outcome).inc()
	DISCOVERY_LATENCY.observe(elapsed_seconds)
	DISCOVERY_CANDIDATES.observe(returned)


def inc_discovery_dropped(reason: str, count: int = 1) -> None:
	if count > 0:
		DISCOVERY_DROPPED.labels(reason=reason).inc(count)


def inc_swipe(direction: str) -> None:
	SWIPES_RECORDED.labels(direction=direction).inc()


def inc_match(result: str) -> None:
	MATCH_RESULTS.labels(result=result).inc()


def inc_preference_refresh(result: str) -> None:
	PREFERENCE_REFRESHES.labels(result=result).inc()


def inc_expired_posts(count: int) -> None:
	if count > 0:
		EXPIRED_POSTS.inc(count)


def record_job_run(name: str, *, result: str, duration_seconds: float | None = None) -> None:
	JOB_RUNS.labels(name=name, result=result).inc()
	if duration_seconds is not None:
		JOB_DURATION.labels(name=name).observe(duration_seconds)
