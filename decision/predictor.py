# decision/predictor.py

import math
from dataclasses import dataclass

from decision.models import MetricsSnapshot, utc_now
from decision.scaling_policy import decide

# Load model: CPU ~ 2*rps, Mem ~ 1*rps, P95 grows linearly once rps passes the knee
CPU_PER_RPS = 2.0
MEM_PER_RPS = 1.0
P95_BASE_MS = 100.0
P95_KNEE_RPS = 200.0
P95_SLOPE_MS = 0.8


@dataclass(frozen=True)
class Prediction:
    from_replicas: int
    to_replicas: int
    reason: str
    metrics: MetricsSnapshot

    def to_dict(self):
        return {
            "from": self.from_replicas,
            "to": self.to_replicas,
            "reason": self.reason,
            "metrics": self.metrics.to_dict(),
        }


def synthesize_metrics(rps, now=None):
    """
    Map a request rate onto the metrics the decision rule consumes.

    Raises:
        ValueError: If the rate yields metrics that are not finite numbers
    """
    cpu = CPU_PER_RPS * rps
    mem = MEM_PER_RPS * rps
    p95 = P95_BASE_MS + P95_SLOPE_MS * max(0.0, rps - P95_KNEE_RPS)
    if not all(math.isfinite(v) for v in (cpu, mem, p95)):
        raise ValueError(f"Load of {rps} rps is out of range")
    return MetricsSnapshot(cpu=cpu, mem=mem, p95=p95, taken_at=now or utc_now())


def predict(rps, current, config):
    """
    Evaluate the scaling rule against synthetic load.

    Advisory only: nothing here touches replica state, the cooldown
    timer or the audit log.
    """
    metrics = synthesize_metrics(rps)
    target, reason = decide(current, metrics, config)
    return Prediction(
        from_replicas=current,
        to_replicas=target,
        reason=reason,
        metrics=metrics,
    )
