import pytest
import requests

from data.fetch_live_metrics import (
    MetricsUnavailable,
    PrometheusMetricsSource,
    StaticMetricsSource,
    build_metrics_source,
)


class FakeResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} Server Error")

    def json(self):
        return self.payload


class FakeSession:
    """Answers query_range calls by matching the metric name in the PromQL."""

    def __init__(self, series, status=200):
        self.series = series
        self.status = status
        self.requests = []

    def get(self, url, params=None, timeout=None):
        self.requests.append((url, params))
        query = params["query"]
        if "container_cpu_usage_seconds_total" in query:
            values = self.series.get("cpu", [])
        elif "container_memory_working_set_bytes" in query:
            values = self.series.get("mem", [])
        else:
            values = self.series.get("p95", [])
        result = [{"metric": {}, "values": values}] if values else []
        return FakeResponse({"status": "success", "data": {"result": result}}, self.status)


def test_static_source_defaults():
    m = StaticMetricsSource(environ={}).fetch()
    assert (m.cpu, m.mem, m.p95) == (250.0, 256.0, 120.0)


def test_static_source_reads_overrides_each_fetch():
    env = {"FAKE_CPU": "700"}
    source = StaticMetricsSource(environ=env)
    assert source.fetch().cpu == 700.0

    env["FAKE_P95"] = "450"
    assert source.fetch().p95 == 450.0


def test_static_source_rejects_garbage():
    with pytest.raises(MetricsUnavailable):
        StaticMetricsSource(environ={"FAKE_MEM": "lots"}).fetch()


def test_prometheus_takes_latest_sample():
    session = FakeSession({
        "cpu": [[1700000000, "410.5"], [1700000005, "620"]],
        "mem": [[1700000000, "300"], [1700000005, "310"]],
        "p95": [[1700000000, "180"]],
    })
    source = PrometheusMetricsSource("http://prom:9090/", "shop", "web", session=session)

    m = source.fetch()

    # p95 has no sample at the last timestamp and is forward filled
    assert (m.cpu, m.mem, m.p95) == (620.0, 310.0, 180.0)
    assert m.taken_at.timestamp() == pytest.approx(1700000005)
    assert session.requests[0][0] == "http://prom:9090/api/v1/query_range"
    assert "namespace='shop'" in session.requests[0][1]["query"]
    assert "pod=~'web-.*'" in session.requests[0][1]["query"]


def test_prometheus_empty_result_is_unavailable():
    session = FakeSession({"cpu": [[1700000000, "400"]], "mem": [[1700000000, "300"]]})
    source = PrometheusMetricsSource("http://prom:9090", "shop", "web", session=session)
    with pytest.raises(MetricsUnavailable, match="p95"):
        source.fetch()


def test_prometheus_http_error_is_unavailable():
    session = FakeSession({}, status=503)
    source = PrometheusMetricsSource("http://prom:9090", "shop", "web", session=session)
    with pytest.raises(MetricsUnavailable):
        source.fetch()


def test_prometheus_connection_error_is_unavailable():
    class DownSession:
        def get(self, url, params=None, timeout=None):
            raise requests.ConnectionError("connection refused")

    source = PrometheusMetricsSource("http://prom:9090", "shop", "web", session=DownSession())
    with pytest.raises(MetricsUnavailable, match="connection refused"):
        source.fetch()


def test_build_metrics_source(make_config):
    assert isinstance(build_metrics_source(make_config()), StaticMetricsSource)
    source = build_metrics_source(
        make_config(metrics_backend="prometheus", prometheus_url="http://prom:9090")
    )
    assert isinstance(source, PrometheusMetricsSource)
    assert source.query_url == "http://prom:9090/api/v1/query_range"


@pytest.mark.parametrize("payload", [["not", "an", "object"], "error", {"data": {"result": ["bad"]}}])
def test_prometheus_unexpected_body_is_unavailable(payload):
    class OddSession:
        def get(self, url, params=None, timeout=None):
            return FakeResponse(payload)

    source = PrometheusMetricsSource("http://prom:9090", "shop", "web", session=OddSession())
    with pytest.raises(MetricsUnavailable):
        source.fetch()
