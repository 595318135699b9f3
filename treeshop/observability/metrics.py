# treeshop/observability/metrics.py
from fastapi import APIRouter
from starlette.responses import Response

from prometheus_client import Counter, generate_latest, CONTENT_TYPE_LATEST

router = APIRouter(tags=["observability"])

stage_transition_counter = Counter(
    "treeshop_stage_transitions_total",
    "Lead workflow stage transitions",
    ["from_stage", "to_stage", "kind"],  # kind: ADVANCE|OVERRIDE
)

proposal_status_counter = Counter(
    "treeshop_proposal_status_total",
    "Proposal status changes",
    ["status"],
)

time_logged_counter = Counter(
    "treeshop_time_entries_logged_total",
    "Time entries logged against work orders",
    ["billable"],  # true|false
)

invoice_paid_counter = Counter(
    "treeshop_invoices_paid_total",
    "Invoices settled in full",
)

calculation_error_counter = Counter(
    "treeshop_calculation_errors_total",
    "Rejected calculator inputs",
    ["engine"],  # tree|equipment|compensation|geo|rollup
)


@router.get("/metrics", include_in_schema=True)
def metrics() -> Response:
    # Prometheus expects text/plain; version=0.0.4
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
