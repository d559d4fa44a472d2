import pytest

from backend.config import Config
from data.fetch_live_metrics import MetricsSource
from decision.models import MetricsSnapshot, utc_now
from decision.reconciler import ReplicaController
from k8s.deployment_controller import ActuationError


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeMetricsSource(MetricsSource):
    def __init__(self, cpu=250.0, mem=256.0, p95=120.0):
        self.set(cpu, mem, p95)
        self.error = None
        self.calls = 0

    def set(self, cpu, mem, p95):
        self.values = (cpu, mem, p95)

    def fetch(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        cpu, mem, p95 = self.values
        return MetricsSnapshot(cpu=cpu, mem=mem, p95=p95, taken_at=utc_now())


class RecordingActuator:
    def __init__(self):
        self.calls = []
        self.fail = False

    def set_replicas(self, namespace, deployment, target):
        self.calls.append((namespace, deployment, target))
        if self.fail:
            raise ActuationError("API server unavailable")


def build_config(**overrides):
    values = dict(
        namespace="smart-autoscaler",
        deployment="sample-app",
        min_replicas=1,
        max_replicas=10,
        cpu_threshold=500.0,
        mem_threshold=512.0,
        p95_threshold=400.0,
        cooldown_seconds=60.0,
        reconcile_interval_seconds=5.0,
    )
    values.update(overrides)
    return Config(**values)


@pytest.fixture
def make_config():
    return build_config


@pytest.fixture
def config():
    return build_config()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def metrics_source():
    return FakeMetricsSource()


@pytest.fixture
def actuator():
    return RecordingActuator()


@pytest.fixture
def snapshot():
    def _snapshot(cpu, mem, p95):
        return MetricsSnapshot(cpu=cpu, mem=mem, p95=p95, taken_at=utc_now())
    return _snapshot


@pytest.fixture
def make_controller(config, metrics_source, actuator, clock):
    def _make(initial_replicas=3, **kwargs):
        kwargs.setdefault("clock", clock)
        return ReplicaController(
            kwargs.pop("config", config),
            kwargs.pop("metrics_source", metrics_source),
            kwargs.pop("actuator", actuator),
            initial_replicas,
            **kwargs,
        )
    return _make
