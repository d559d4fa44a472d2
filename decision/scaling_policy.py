# decision/scaling_policy.py

REASON_SCALE_UP = "Any(metric)>threshold"
REASON_SCALE_DOWN = "All(metric)<half-threshold"
REASON_HOLD = "Hold"

# Scale-down triggers only when every metric is below this fraction of its threshold
SCALE_DOWN_FRACTION = 0.5


def decide(current, metrics, config):
    """
    Decide the target replica count from one metrics sample.

    Scale up by one if any metric exceeds its threshold; otherwise scale
    down by one if every metric is below half of its threshold; otherwise
    hold. Comparisons are strict, so values sitting exactly on a threshold
    hold. A condition that would cross the replica bounds is held rather
    than clamped.

    Args:
        current: Current replica count
        metrics: MetricsSnapshot to evaluate
        config: Config carrying thresholds and replica bounds

    Returns:
        tuple of (target replica count, reason string)
    """
    up = (
        metrics.cpu > config.cpu_threshold
        or metrics.mem > config.mem_threshold
        or metrics.p95 > config.p95_threshold
    )
    down = (
        metrics.cpu < config.cpu_threshold * SCALE_DOWN_FRACTION
        and metrics.mem < config.mem_threshold * SCALE_DOWN_FRACTION
        and metrics.p95 < config.p95_threshold * SCALE_DOWN_FRACTION
    )

    # Up is checked first and wins if both conditions hold
    if up and current < config.max_replicas:
        return current + 1, REASON_SCALE_UP
    if down and current > config.min_replicas:
        return current - 1, REASON_SCALE_DOWN
    return current, REASON_HOLD


def thresholds_string(config):
    """Render the thresholds snapshot stored with every audit entry."""
    return (
        f"CPU>{config.cpu_threshold:.0f},"
        f"Mem>{config.mem_threshold:.0f},"
        f"P95>{config.p95_threshold:.0f}"
    )
