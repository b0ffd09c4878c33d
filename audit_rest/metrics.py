"""
Audit Metrics
=============
Prometheus counters for the auditing core.
"""

from prometheus_client import CollectorRegistry, Counter, generate_latest

# Custom registry so hosts decide whether to expose audit metrics
AUDIT_REGISTRY = CollectorRegistry()

AUDIT_RECORDS_EMITTED = Counter(
    name="audit_records_emitted_total",
    documentation="Audit records published to subscribers",
    labelnames=["type"],
    registry=AUDIT_REGISTRY,
)

AUDIT_ERRORS = Counter(
    name="audit_errors_total",
    documentation="Audit attempts abandoned because of an internal error",
    labelnames=["phase", "kind"],
    registry=AUDIT_REGISTRY,
)

AUDIT_BASELINE_LOOKUPS = Counter(
    name="audit_baseline_lookups_total",
    documentation="Baselines obtained for update and delete audits",
    labelnames=["source"],
    registry=AUDIT_REGISTRY,
)


def record_emitted(record_type: str) -> None:
    AUDIT_RECORDS_EMITTED.labels(type=record_type).inc()


def record_error(phase: str, kind: str) -> None:
    AUDIT_ERRORS.labels(phase=phase, kind=kind).inc()


def record_baseline_lookup(source: str) -> None:
    """source is "cache" or "fetch"."""
    AUDIT_BASELINE_LOOKUPS.labels(source=source).inc()


def get_metrics_text() -> bytes:
    """Exposition-format dump of the audit registry."""
    return generate_latest(AUDIT_REGISTRY)
