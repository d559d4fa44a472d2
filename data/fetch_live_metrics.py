# data/fetch_live_metrics.py

import os
import time
import logging
import requests
import pandas as pd
from decision.models import MetricsSnapshot, utc_now

WINDOW_SECONDS = 120
STEP = "5s"
REQUEST_TIMEOUT = 10

METRICS = {
    # millicores per pod, averaged across the deployment's pods
    "cpu": (
        "avg(rate(container_cpu_usage_seconds_total"
        "{{namespace='{namespace}',pod=~'{deployment}-.*',container!=''}}[1m])) * 1000"
    ),
    # MiB per pod
    "mem": (
        "avg(container_memory_working_set_bytes"
        "{{namespace='{namespace}',pod=~'{deployment}-.*',container!=''}}) / 1048576"
    ),
    # p95 request latency in ms
    "p95": (
        "histogram_quantile(0.95, sum by (le) (rate(http_request_duration_seconds_bucket"
        "{{namespace='{namespace}',service='{deployment}'}}[1m]))) * 1000"
    ),
}


class MetricsUnavailable(Exception):
    """The metrics backend could not produce a usable snapshot."""


class MetricsSource:
    """Supplies the per-pod load signal the controller samples each tick."""

    def fetch(self):
        """
        Returns:
            MetricsSnapshot

        Raises:
            MetricsUnavailable: If no snapshot can be produced
        """
        raise NotImplementedError


class StaticMetricsSource(MetricsSource):
    """
    Placeholder backend returning fixed values.

    FAKE_CPU / FAKE_MEM / FAKE_P95 override the defaults and are re-read on
    every fetch, so load can be simulated without restarting.
    """

    DEFAULTS = {"cpu": 250.0, "mem": 256.0, "p95": 120.0}

    def __init__(self, environ=None):
        self._environ = os.environ if environ is None else environ

    def _read(self, name):
        raw = self._environ.get(f"FAKE_{name.upper()}", "")
        if raw == "":
            return self.DEFAULTS[name]
        try:
            return float(raw)
        except ValueError:
            raise MetricsUnavailable(f"FAKE_{name.upper()} is not a number: '{raw}'") from None

    def fetch(self):
        return MetricsSnapshot(
            cpu=self._read("cpu"),
            mem=self._read("mem"),
            p95=self._read("p95"),
            taken_at=utc_now(),
        )


class PrometheusMetricsSource(MetricsSource):
    """Query Prometheus for the latest CPU, memory and p95 latency of the target deployment."""

    def __init__(self, base_url, namespace, deployment, session=None):
        self.query_url = base_url.rstrip("/") + "/api/v1/query_range"
        self.namespace = namespace
        self.deployment = deployment
        self.session = session or requests.Session()

    def fetch_metric(self, query, name, start, end):
        """Fetch a single metric series as a DataFrame with columns ['timestamp', name]."""
        params = {
            "query": query,
            "start": start,
            "end": end,
            "step": STEP
        }

        try:
            r = self.session.get(self.query_url, params=params, timeout=REQUEST_TIMEOUT)
            r.raise_for_status()
            data = r.json().get("data", {}).get("result", [])
            values = data[0].get("values", []) if data else []
        except (requests.RequestException, ValueError, AttributeError, TypeError, KeyError) as e:
            logging.error(f"Failed to fetch metric {name}: {e}")
            raise MetricsUnavailable(f"Prometheus query for {name} failed: {e}") from e

        if not data:
            logging.warning(f"No data returned for metric {name}")
            raise MetricsUnavailable(f"No data returned for metric {name}")

        if not values:
            raise MetricsUnavailable(f"Empty series for metric {name}")

        df = pd.DataFrame(values, columns=["timestamp", name])

        # Convert timestamp to datetime and value to float
        df["timestamp"] = pd.to_datetime(df["timestamp"].astype(float), unit="s", utc=True)
        df[name] = pd.to_numeric(df[name], errors="coerce")

        return df

    def fetch(self):
        end = int(time.time())
        start = end - WINDOW_SECONDS

        df = None
        for name, template in METRICS.items():
            query = template.format(namespace=self.namespace, deployment=self.deployment)
            series = self.fetch_metric(query, name, start, end)
            df = series if df is None else df.merge(series, on="timestamp", how="outer")

        df.sort_values("timestamp", inplace=True)
        df.ffill(inplace=True)

        latest = df.iloc[-1]
        if latest[list(METRICS)].isnull().any():
            raise MetricsUnavailable("Latest metrics sample is incomplete")

        return MetricsSnapshot(
            cpu=float(latest["cpu"]),
            mem=float(latest["mem"]),
            p95=float(latest["p95"]),
            taken_at=latest["timestamp"].to_pydatetime(),
        )


def build_metrics_source(config):
    """Select the metrics backend named by the config."""
    if config.metrics_backend == "prometheus":
        logging.info(f"Using Prometheus metrics at {config.prometheus_url}")
        return PrometheusMetricsSource(config.prometheus_url, config.namespace, config.deployment)
    logging.info("Using static placeholder metrics (FAKE_CPU / FAKE_MEM / FAKE_P95)")
    return StaticMetricsSource()
