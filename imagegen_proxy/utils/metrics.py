"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
upstream_attempts_total = Counter(
    "upstream_attempts_total",
    "Total upstream call attempts by outcome (success or failure type)",
    ["upstream", "outcome"],
)

upstream_retries_total = Counter(
    "upstream_retries_total",
    "Total retries scheduled after a failed upstream attempt",
    ["upstream", "failure_type"],
)

images_generated_total = Counter(
    "images_generated_total",
    "Total generation requests by result",
    ["result"],  # uploaded, degraded, failed
)

# Histograms
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration",
    ["method", "status"],
    buckets=[0.1, 0.5, 1, 5, 15, 30, 60, 120, 240],
)


# Metrics endpoint router
router = APIRouter()


@router.get("/metrics")
def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint for scraping."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
