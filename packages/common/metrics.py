"""
Prometheus counters for the migration pipeline

Exposed by the API at /metrics. Degraded-but-recoverable paths (oracle
failures, allocator exhaustion) are counted here so they stay visible
without surfacing as user-facing errors.
"""
from prometheus_client import Counter

migration_accounts_total = Counter(
    "coa_migration_accounts_total",
    "Legacy accounts processed by the migration service, by final status",
    ["status"],
)

oracle_calls_total = Counter(
    "coa_oracle_calls_total",
    "Semantic oracle calls, by outcome (verdict, no_verdict, timeout, error)",
    ["outcome"],
)

code_allocation_exhausted_total = Counter(
    "coa_code_allocation_exhausted_total",
    "Code allocations that exhausted deterministic probing and fell back to random codes",
    ["account_type"],
)

template_load_failures_total = Counter(
    "coa_template_load_failures_total",
    "Template loads that failed and forced no-template mode",
)
