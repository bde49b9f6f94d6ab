"""Prometheus metrics for business KPIs and request timing.

Each app owns its own ``CollectorRegistry`` so several apps (and test
clients) in one process never share counters.
"""

from typing import Dict, Optional

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Gauge, Histogram, generate_latest

from affiliatebase.core.models import EVENT_VIEW
from affiliatebase.core.repositories import EVENT_DUPLICATE, EVENT_TRACKED

PREFIX = "affiliatebase"
REQUEST_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10)

# Reasons for fraud_blocked
REASON_DUPLICATE = "duplicate"


class AppMetrics:
    """Counters, gauge and histogram registered on a private registry."""

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        self.page_views = Counter(
            f"{PREFIX}_page_views_total", "Total number of unique page views",
            ["program_id", "program_name"], registry=self.registry,
        )
        self.clicks = Counter(
            f"{PREFIX}_clicks_total", "Total number of affiliate link clicks",
            ["program_id", "program_name"], registry=self.registry,
        )
        self.fraud_blocked = Counter(
            f"{PREFIX}_fraud_blocked_total", "Total number of blocked fraud attempts",
            ["program_id", "reason"], registry=self.registry,
        )
        self.programs_created = Counter(
            f"{PREFIX}_programs_created_total", "Total number of programs created",
            registry=self.registry,
        )
        self.active_programs = Gauge(
            f"{PREFIX}_active_programs", "Number of active programs",
            registry=self.registry,
        )
        self.request_duration = Histogram(
            f"{PREFIX}_http_request_duration_seconds", "Duration of HTTP requests in seconds",
            ["method", "route", "status_code"], buckets=REQUEST_BUCKETS, registry=self.registry,
        )
        self.api_errors = Counter(
            f"{PREFIX}_api_errors_total", "Total number of API errors",
            ["route", "error_type"], registry=self.registry,
        )

    def event_recorded(self, program_id: str, program_name: str, event_type: str, outcome: str) -> None:
        """
        Count the outcome of one view or click write.

        Tracked events bump the per-program counter; repeats of the same
        visitor on the same day count as blocked duplicates. Failed writes
        are not counted.
        """
        if outcome == EVENT_TRACKED:
            counter = self.page_views if event_type == EVENT_VIEW else self.clicks
            counter.labels(program_id=program_id, program_name=program_name).inc()
        elif outcome == EVENT_DUPLICATE:
            self.fraud_blocked.labels(program_id=program_id, reason=REASON_DUPLICATE).inc()

    def program_created(self) -> None:
        self.programs_created.inc()

    def observe_request(self, method: str, route: str, status_code: int, seconds: float) -> None:
        """Record one finished request; 5xx responses also count as API errors."""
        self.request_duration.labels(method=method, route=route, status_code=str(status_code)).observe(seconds)
        if status_code >= 500:
            self.api_errors.labels(route=route, error_type=f"http_{status_code}").inc()

    def request_failed(self, route: str, error: BaseException) -> None:
        self.api_errors.labels(route=route, error_type=type(error).__name__).inc()

    def clicks_by_program(self) -> Dict[str, float]:
        """
        Click totals per program id, summed over program names.

        Returns:
            Mapping of program id to click count
        """
        result: Dict[str, float] = {}
        for metric in self.clicks.collect():
            for sample in metric.samples:
                if not sample.name.endswith("_total"):
                    continue
                program_id = sample.labels.get("program_id")
                if program_id:
                    result[program_id] = result.get(program_id, 0) + sample.value
        return result

    def exposition(self) -> bytes:
        """Text exposition format for scrapers."""
        return generate_latest(self.registry)
