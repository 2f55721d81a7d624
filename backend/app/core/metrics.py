"""Central Prometheus metrics registry.

All application metrics are defined here to avoid scattered metric definitions
and ensure consistent naming/labeling.
"""

from prometheus_client import Counter, Gauge, Histogram, Info

# Application info
app_info = Info("workflow_router_app", "Workflow router application info")

# --- HTTP ---
http_requests_total = Counter(
    "workflow_router_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
http_request_duration_seconds = Histogram(
    "workflow_router_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

# --- Canvas sync ---
sync_operations_total = Counter(
    "workflow_router_sync_operations_total",
    "Store writes issued by canvas saves",
    ["operation"],
)
sync_runs_total = Counter(
    "workflow_router_sync_runs_total",
    "Canvas save runs",
    ["status"],
)
sync_duration_seconds = Histogram(
    "workflow_router_sync_duration_seconds",
    "Duration of a successful canvas save in seconds",
)
save_lock_checks_total = Counter(
    "workflow_router_save_lock_checks_total",
    "Per-workflow save lock acquisitions",
    ["status"],
)

# --- Generation ---
generation_requests_total = Counter(
    "workflow_router_generation_requests_total",
    "LLM workflow generation requests",
    ["status"],
)
generation_duration_seconds = Histogram(
    "workflow_router_generation_duration_seconds",
    "LLM workflow generation round-trip in seconds",
)

# --- Store health ---
store_health_check_duration_seconds = Histogram(
    "workflow_router_store_health_check_duration_seconds",
    "Duration of store health check pings in seconds",
    ["store"],
)
store_health_status = Gauge(
    "workflow_router_store_health_status",
    "Store health status (1=healthy, 0=unhealthy)",
    ["store"],
)
