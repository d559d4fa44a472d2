# decision/models.py

import datetime
from dataclasses import dataclass
from typing import Optional

ACTION_SCALE = "scale"
ACTION_HOLD = "hold"


def utc_now():
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass(frozen=True)
class MetricsSnapshot:
    cpu: float   # millicores per pod avg
    mem: float   # MiB per pod avg
    p95: float   # ms
    taken_at: datetime.datetime

    def to_dict(self):
        return {
            "cpu": self.cpu,
            "mem": self.mem,
            "p95": self.p95,
            "at": self.taken_at.isoformat(),
        }


@dataclass(frozen=True)
class Decision:
    """One reconcile outcome as recorded in the audit log."""

    time: datetime.datetime
    action: str
    from_replicas: int
    to_replicas: int
    reason: str
    threshold: str
    degraded: bool = False

    def to_dict(self):
        return {
            "time": self.time.isoformat(),
            "action": self.action,
            "from": self.from_replicas,
            "to": self.to_replicas,
            "reason": self.reason,
            "threshold": self.threshold,
            "degraded": self.degraded,
        }


@dataclass
class ReplicaState:
    current: int
    last_scale_time: Optional[float] = None
