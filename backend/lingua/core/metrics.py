"""Prometheus metrics for the dispatch pipeline.

Each ``PipelineMetrics`` owns its own ``CollectorRegistry`` so several
pipelines (and tests) can coexist in one process. Expose
``metrics.registry`` through ``prometheus_client.start_http_server`` or
``generate_latest`` to scrape it.
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

QE_SCORE_BUCKETS = (0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.72, 0.8, 0.9, 0.95, 1.0)


class PipelineMetrics:
    """Counters and histograms for routing, escalation and engine calls."""

    def __init__(self, registry: Optional[CollectorRegistry] = None, namespace: str = "lingua"):
        self.registry = registry if registry is not None else CollectorRegistry()

        self.escalations_total = Counter(
            "router_escalations_total",
            "Engine escalations by source engine, target engine and reason",
            ["from_engine", "to_engine", "reason"],
            namespace=namespace,
            registry=self.registry,
        )
        self.collab_steps_total = Counter(
            "collab_steps_total",
            "Review/repair/committee steps and their outcome",
            ["step", "outcome"],
            namespace=namespace,
            registry=self.registry,
        )
        self.outcomes_total = Counter(
            "outcomes_total",
            "Per-item terminal outcomes",
            ["outcome"],
            namespace=namespace,
            registry=self.registry,
        )
        self.router_decisions_total = Counter(
            "router_decisions_total",
            "Primary engine routing decisions",
            ["engine", "reason"],
            namespace=namespace,
            registry=self.registry,
        )
        self.engine_calls_total = Counter(
            "engine_calls_total",
            "Engine call attempts by status (ok, transient, permanent)",
            ["engine", "status"],
            namespace=namespace,
            registry=self.registry,
        )
        self.parse_repairs_total = Counter(
            "parse_repairs_total",
            "Engine payloads that needed truncation, padding or line-split recovery",
            namespace=namespace,
            registry=self.registry,
        )
        self.qe_score = Histogram(
            "qe_score",
            "Heuristic quality score of sanitized candidates",
            buckets=QE_SCORE_BUCKETS,
            namespace=namespace,
            registry=self.registry,
        )
        self.engine_call_duration = Histogram(
            "engine_call_duration_seconds",
            "Engine call latency",
            ["engine"],
            namespace=namespace,
            registry=self.registry,
        )

    def record_escalation(self, from_engine: str, to_engine: str, reason: str) -> None:
        self.escalations_total.labels(
            from_engine=from_engine, to_engine=to_engine, reason=reason
        ).inc()

    def record_collab_step(self, step: str, outcome: str, amount: int = 1) -> None:
        self.collab_steps_total.labels(step=step, outcome=outcome).inc(amount)

    def record_outcome(self, outcome: str) -> None:
        self.outcomes_total.labels(outcome=outcome).inc()

    def record_router_decision(self, engine: str, reason: str) -> None:
        self.router_decisions_total.labels(engine=engine, reason=reason).inc()

    def record_engine_call(self, engine: str, status: str, duration_s: float) -> None:
        self.engine_calls_total.labels(engine=engine, status=status).inc()
        self.engine_call_duration.labels(engine=engine).observe(duration_s)

    def record_parse_repair(self) -> None:
        self.parse_repairs_total.inc()

    def observe_quality(self, score: float) -> None:
        self.qe_score.observe(score)

    def sample(self, name: str, labels: Optional[dict] = None) -> Optional[float]:
        """Current value of one sample, e.g. ``lingua_outcomes_total``."""
        return self.registry.get_sample_value(name, labels or {})

    def render(self) -> bytes:
        """Prometheus text exposition of this registry."""
        return generate_latest(self.registry)
