"""Prometheus metrics for authcore.

Metrics are exposed at the /metrics endpoint.

Metrics Categories:
- HTTP request metrics (latency, count)
- Ceremony metrics (registrations and authentications by outcome, failures by reason)
- Artifact metrics (grant revocations, purges)
- Consent metrics (authorization decisions)
"""

from prometheus_client import Counter, Gauge, Histogram, Info

APP_INFO = Info("authcore_app", "authcore application information")

# HTTP Request metrics
HTTP_REQUESTS_TOTAL = Counter(
    "authcore_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "authcore_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

HTTP_REQUESTS_IN_PROGRESS = Gauge(
    "authcore_http_requests_in_progress",
    "Number of HTTP requests currently in progress",
    ["method", "endpoint"],
)

# Ceremony metrics
CEREMONIES_TOTAL = Counter(
    "authcore_webauthn_ceremonies_total",
    "Completed WebAuthn ceremonies",
    ["ceremony", "outcome"],  # ceremony: registration, authentication; outcome: success, failure
)

CEREMONY_FAILURES_TOTAL = Counter(
    "authcore_webauthn_ceremony_failures_total",
    "WebAuthn ceremony failures by reason",
    ["ceremony", "reason"],
)

# Artifact metrics
GRANT_REVOCATIONS_TOTAL = Counter(
    "authcore_grant_revocations_total",
    "Grant revocations performed",
)

ARTIFACTS_REVOKED_TOTAL = Counter(
    "authcore_artifacts_revoked_total",
    "Artifacts deleted through grant revocation",
)

ARTIFACTS_PURGED_TOTAL = Counter(
    "authcore_artifacts_purged_total",
    "Expired rows hard-deleted by hygiene tasks",
    ["store"],  # artifacts, challenges
)

# Consent metrics
CONSENT_DECISIONS_TOTAL = Counter(
    "authcore_consent_decisions_total",
    "Consent authorization decisions",
    ["decision"],  # allowed, denied, no_consent
)


def set_app_info(version: str, environment: str) -> None:
    """Set application info metric.

    Args:
        version: Application version string.
        environment: Deployment environment (development, production).
    """
    APP_INFO.info({"version": version, "environment": environment})


def record_ceremony(ceremony: str, success: bool, reason: str | None = None) -> None:
    """Record a completed ceremony.

    Args:
        ceremony: ``registration`` or ``authentication``.
        success: Whether the ceremony verified.
        reason: Failure kind (e.g. ``counter_regression``) when it did not.
    """
    outcome = "success" if success else "failure"
    CEREMONIES_TOTAL.labels(ceremony=ceremony, outcome=outcome).inc()
    if not success:
        CEREMONY_FAILURES_TOTAL.labels(ceremony=ceremony, reason=reason or "unknown").inc()


def record_grant_revocation(deleted: int) -> None:
    """Record a grant revocation.

    Args:
        deleted: Number of artifacts the revocation removed.
    """
    GRANT_REVOCATIONS_TOTAL.inc()
    ARTIFACTS_REVOKED_TOTAL.inc(deleted)


def record_purge(store: str, deleted: int) -> None:
    """Record a hygiene purge.

    Args:
        store: ``artifacts`` or ``challenges``.
        deleted: Number of expired rows removed.
    """
    ARTIFACTS_PURGED_TOTAL.labels(store=store).inc(deleted)


def record_consent_decision(decision: str) -> None:
    """Record a consent authorization decision.

    Args:
        decision: ``allowed``, ``denied`` or ``no_consent``.
    """
    CONSENT_DECISIONS_TOTAL.labels(decision=decision).inc()
