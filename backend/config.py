# backend/config.py

import os
import math
import re
import logging
from dataclasses import dataclass

RECONCILE_INTERVAL_DEFAULT = "5s"
AUDIT_CAPACITY = 500

# Cooldown to avoid thrashing between scale actions
COOLDOWN_DEFAULT = "60s"

LOG_FILE = os.getenv("LOG_FILE", "logs/autoscaler.log")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


@dataclass(frozen=True)
class Config:
    namespace: str
    deployment: str
    min_replicas: int
    max_replicas: int
    cpu_threshold: float   # millicores per pod
    mem_threshold: float   # MiB per pod
    p95_threshold: float   # ms
    cooldown_seconds: float
    reconcile_interval_seconds: float = 5.0
    dry_run: bool = False
    metrics_backend: str = "static"
    prometheus_url: str = "http://prometheus:9090"
    actuation_retries: int = 3

    def __post_init__(self):
        if self.min_replicas < 0:
            raise ValueError(f"MIN_REPLICAS must be >= 0, got {self.min_replicas}")
        if self.min_replicas > self.max_replicas:
            raise ValueError(
                f"MIN_REPLICAS ({self.min_replicas}) must not exceed "
                f"MAX_REPLICAS ({self.max_replicas})"
            )
        for name in ("cpu_threshold", "mem_threshold", "p95_threshold"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0, got {getattr(self, name)}")
        if self.cooldown_seconds < 0:
            raise ValueError(f"COOLDOWN must be >= 0, got {self.cooldown_seconds}")
        if self.reconcile_interval_seconds <= 0:
            raise ValueError(
                f"RECONCILE_INTERVAL must be > 0, got {self.reconcile_interval_seconds}"
            )
        if self.actuation_retries < 1:
            raise ValueError(f"ACTUATION_RETRIES must be >= 1, got {self.actuation_retries}")
        if self.metrics_backend not in ("static", "prometheus"):
            raise ValueError(
                f"METRICS_BACKEND must be 'static' or 'prometheus', got '{self.metrics_backend}'"
            )

    def summary(self) -> dict:
        return {
            "namespace": self.namespace,
            "deployment": self.deployment,
            "min_replicas": self.min_replicas,
            "max_replicas": self.max_replicas,
            "cpu_threshold": self.cpu_threshold,
            "mem_threshold": self.mem_threshold,
            "p95_threshold": self.p95_threshold,
            "cooldown_seconds": self.cooldown_seconds,
            "dry_run": self.dry_run,
        }


def parse_duration(value: str) -> float:
    """
    Parse a Go-style duration string into seconds.

    Accepts compound forms like "1m30s", "500ms", "2h", "0" and bare
    numbers, which are read as seconds.

    Raises:
        ValueError: If the string is not a valid duration
    """
    text = value.strip()
    if not text:
        raise ValueError("Empty duration")

    try:
        seconds = float(text)
    except ValueError:
        pass
    else:
        if not math.isfinite(seconds):
            raise ValueError(f"Invalid duration: '{value}'")
        return seconds

    sign = 1.0
    if text[0] in "+-":
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()

    if pos == 0 or pos != len(text):
        raise ValueError(f"Invalid duration: '{value}'")
    return sign * total


def _env(name, default):
    value = os.environ.get(name, "")
    return value if value != "" else default


def _env_int(name, default):
    raw = _env(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got '{raw}'") from None


def _env_float(name, default):
    raw = _env(name, str(default))
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got '{raw}'") from None


def _env_duration(name, default):
    raw = _env(name, default)
    try:
        return parse_duration(raw)
    except ValueError:
        raise ValueError(f"{name} must be a duration like '60s', got '{raw}'") from None


def load_config() -> Config:
    """
    Build the immutable controller configuration from the environment.

    Raises:
        ValueError: If a variable is malformed or the values are inconsistent
    """
    return Config(
        namespace=_env("TARGET_NAMESPACE", "smart-autoscaler"),
        deployment=_env("TARGET_DEPLOYMENT", "sample-app"),
        min_replicas=_env_int("MIN_REPLICAS", 1),
        max_replicas=_env_int("MAX_REPLICAS", 10),
        cpu_threshold=_env_float("CPU_THRESHOLD", 500),
        mem_threshold=_env_float("MEM_THRESHOLD", 512),
        p95_threshold=_env_float("P95_THRESHOLD", 400),
        cooldown_seconds=_env_duration("COOLDOWN", COOLDOWN_DEFAULT),
        reconcile_interval_seconds=_env_duration("RECONCILE_INTERVAL", RECONCILE_INTERVAL_DEFAULT),
        # Dry-run mode logs scaling actions without calling the API
        dry_run=_env("DRY_RUN", "False").lower() == "true",
        metrics_backend=_env("METRICS_BACKEND", "static").lower(),
        prometheus_url=_env("PROMETHEUS_URL", "http://prometheus:9090"),
        actuation_retries=_env_int("ACTUATION_RETRIES", 3),
    )


def configure_logging(log_file=None, level=None):
    """Send log records to the log file and the console."""
    log_file = log_file or LOG_FILE
    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, level or LOG_LEVEL, logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        handlers=[logging.FileHandler(log_file), logging.StreamHandler()],
    )
