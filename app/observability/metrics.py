"""
Metrics Collection with Prometheus.

Exposes business and system metrics for monitoring.
"""

from prometheus_client import Counter, Gauge, Histogram, Info

from app.config import settings


class HighlightsMetrics:
    """
    Centralized metrics for the highlights API.

    Covers:
    - HTTP requests (rate, duration, in-flight)
    - Debits (outcome, amount)
    - Credit grants and refunds
    - Webhook outcomes per provider
    - Video submissions and job status transitions
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "highlights_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "highlights_http_requests_total",
            "Total HTTP requests",
            ["endpoint", "method", "status_code"],
        )

        self.http_request_duration_seconds = Histogram(
            "highlights_http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["endpoint", "method"],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "highlights_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            ["endpoint", "method"],
        )

        # ====================================================================
        # Ledger Metrics
        # ====================================================================
        self.debits_total = Counter(
            "highlights_debits_total",
            "Total debit attempts",
            ["outcome"],
        )

        self.debit_amount_credits = Histogram(
            "highlights_debit_amount_credits",
            "Debited amounts in credits",
            buckets=(1, 2, 5, 10, 15, 20, 30, 45, 60, 90, 120),
        )

        self.credits_granted_total = Counter(
            "highlights_credits_granted_total",
            "Total credits added to profiles",
            ["reason"],
        )

        self.refunds_total = Counter(
            "highlights_refunds_total",
            "Total compensating refunds issued",
        )

        # ====================================================================
        # Webhook Metrics
        # ====================================================================
        self.webhooks_total = Counter(
            "highlights_webhooks_total",
            "Payment notifications by terminal outcome",
            ["provider", "outcome", "reason"],
        )

        # ====================================================================
        # Video Metrics
        # ====================================================================
        self.video_submissions_total = Counter(
            "highlights_video_submissions_total",
            "Video submissions by outcome",
            ["outcome"],
        )

        self.video_transitions_total = Counter(
            "highlights_video_transitions_total",
            "Video job status transitions",
            ["from_status", "to_status"],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "highlights_errors_total",
            "Total errors by type",
            ["error_type", "operation"],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_debit(self, outcome: str, amount: int) -> None:
        """Record a debit attempt ('applied', 'insufficient', 'not_found')."""
        self.debits_total.labels(outcome=outcome).inc()
        if outcome == "applied":
            self.debit_amount_credits.observe(amount)

    def record_credit(self, reason: str, amount: int) -> None:
        """Record credits added to a profile."""
        self.credits_granted_total.labels(reason=reason).inc(amount)
        if reason == "refund":
            self.refunds_total.inc()

    def record_webhook(self, provider: str, outcome: str, reason: str | None) -> None:
        """Record a webhook terminal outcome."""
        self.webhooks_total.labels(
            provider=provider, outcome=outcome, reason=reason or "none"
        ).inc()

    def record_submission(self, outcome: str) -> None:
        """Record a video submission outcome."""
        self.video_submissions_total.labels(outcome=outcome).inc()

    def record_transition(self, from_status: str, to_status: str) -> None:
        """Record a video job status transition."""
        self.video_transitions_total.labels(from_status=from_status, to_status=to_status).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = HighlightsMetrics()
