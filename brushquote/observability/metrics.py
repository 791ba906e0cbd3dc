# brushquote/observability/metrics.py
from fastapi import APIRouter
from starlette.responses import Response

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

router = APIRouter(tags=["observability"])

pricing_counter = Counter(
    "brushquote_pricing_total",
    "Quote pricing runs",
    ["source", "model"],  # source: unified|legacy
)

pricing_fallback_counter = Counter(
    "brushquote_pricing_fallback_total",
    "Quotes priced by the legacy formula",
    ["reason"],  # no_scheme|calculator_error
)

deposit_verify_counter = Counter(
    "brushquote_deposit_verify_total",
    "Deposit verification outcomes",
    ["result"],  # verified|replay|conflict|processing|failed|mismatch|inconsistent
)

portal_autolock_counter = Counter(
    "brushquote_portal_autolock_total",
    "Portals locked after their paid window elapsed",
    ["trigger"],  # request|sweep
)

transition_counter = Counter(
    "brushquote_proposal_transition_total",
    "Proposal lifecycle transitions",
    ["from_status", "to_status"],
)

gateway_latency_hist = Histogram(
    "brushquote_payment_gateway_latency_seconds",
    "Payment gateway call latency",
    ["operation"],  # create_intent|retrieve_intent
)


@router.get("/metrics", include_in_schema=True)
def metrics() -> Response:
    # Prometheus expects text/plain; version=0.0.4
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
