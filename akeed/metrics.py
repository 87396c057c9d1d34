from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "akeed_http_requests_total",
    "HTTP requests handled",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "akeed_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "path", "status"],
)
REQUEST_ERRORS = Counter(
    "akeed_http_request_errors_total",
    "HTTP requests that ended in a 5xx",
    ["method", "path", "status"],
)

VERIFICATION_OUTCOMES = Counter(
    "akeed_verification_outcomes_total",
    "Order handling outcomes of the verification orchestrator",
    ["outcome"],
)
VERIFICATION_TRANSITIONS = Counter(
    "akeed_verification_transitions_total",
    "Verification status transitions applied from provider events",
    ["status"],
)
