# decision/reconciler.py

import time
import logging
import threading
import traceback

from data.fetch_live_metrics import MetricsUnavailable
from decision.audit_log import AuditLog
from decision.cooldown import CooldownGate
from decision.models import ACTION_HOLD, ACTION_SCALE, Decision, ReplicaState, utc_now
from decision.predictor import predict
from decision.scaling_policy import REASON_HOLD, decide, thresholds_string
from k8s.deployment_controller import ActuationError


class ReplicaController:
    """
    Closed-loop controller for one deployment.

    Owns the replica state, the cooldown timer and the audit log, all
    guarded by a single lock. The lock only covers in-memory reads and
    updates; metrics fetches and actuation calls run outside it so the
    query surface (events, predict, status) never waits on the network.

    Ticks are single-flight: reconcile_once() returns None immediately if
    another tick is already running.
    """

    def __init__(self, config, metrics_source, actuator, initial_replicas,
                 clock=time.monotonic, audit_log=None):
        self.config = config
        self.metrics_source = metrics_source
        self.actuator = actuator
        self.clock = clock

        clamped = min(max(initial_replicas, config.min_replicas), config.max_replicas)
        if clamped != initial_replicas:
            logging.warning(
                f"Initial replica count {initial_replicas} outside "
                f"[{config.min_replicas}, {config.max_replicas}], tracking {clamped}"
            )

        self._state = ReplicaState(current=clamped)
        self._cooldown = CooldownGate(config.cooldown_seconds)
        self._audit = audit_log if audit_log is not None else AuditLog()
        self._lock = threading.Lock()
        self._tick_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread = None

    # ------------------------------------------------------------------
    # Reconcile
    # ------------------------------------------------------------------

    def reconcile_once(self):
        """
        Run one sample → decide → actuate → record cycle.

        Returns:
            The recorded Decision, or None when the tick was suppressed by
            the cooldown, skipped because another tick is running, or
            aborted by an actuation failure.
        """
        if not self._tick_lock.acquire(blocking=False):
            logging.debug("Reconcile already in progress, skipping tick")
            return None
        try:
            return self._reconcile()
        finally:
            self._tick_lock.release()

    def _reconcile(self):
        cfg = self.config

        with self._lock:
            now = self.clock()
            if not self._cooldown.allow(now):
                logging.debug(f"Cooldown {self._cooldown.remaining(now):.0f}s left")
                return None
            baseline = self._state.current

        try:
            metrics = self.metrics_source.fetch()
        except MetricsUnavailable as e:
            logging.warning(f"Metrics unavailable, holding at {baseline}: {e}")
            return self._record(
                ACTION_HOLD, baseline, baseline,
                f"{REASON_HOLD} (metrics unavailable: {e})",
                degraded=True,
            )

        target, reason = decide(baseline, metrics, cfg)

        if target == baseline:
            logging.debug(
                f"Hold at {baseline}: cpu={metrics.cpu:.1f} mem={metrics.mem:.1f} p95={metrics.p95:.1f}"
            )
            return self._record(ACTION_HOLD, baseline, target, reason)

        try:
            self.actuator.set_replicas(cfg.namespace, cfg.deployment, target)
        except ActuationError as e:
            logging.error(f"Scale error: {e}")
            return None

        with self._lock:
            if self._state.current != baseline:
                logging.warning(
                    f"Replica baseline moved from {baseline} to {self._state.current} "
                    f"during actuation, committing {target}"
                )
            now = self.clock()
            self._state.current = target
            self._state.last_scale_time = now
            self._cooldown.record(now)
            decision = self._new_decision(ACTION_SCALE, baseline, target, reason)
            self._audit.append(decision)

        logging.info(
            f"Scaled {cfg.namespace}/{cfg.deployment}: {baseline} → {target} "
            f"(cpu={metrics.cpu:.1f} mem={metrics.mem:.1f} p95={metrics.p95:.1f}) reason={reason}"
        )
        return decision

    def _new_decision(self, action, from_replicas, to_replicas, reason, degraded=False):
        return Decision(
            time=utc_now(),
            action=action,
            from_replicas=from_replicas,
            to_replicas=to_replicas,
            reason=reason,
            threshold=thresholds_string(self.config),
            degraded=degraded,
        )

    def _record(self, action, from_replicas, to_replicas, reason, degraded=False):
        decision = self._new_decision(action, from_replicas, to_replicas, reason, degraded)
        with self._lock:
            self._audit.append(decision)
        return decision

    # ------------------------------------------------------------------
    # Background loop
    # ------------------------------------------------------------------

    def run(self, stop_event=None):
        """Reconcile every interval until the stop event is set."""
        stop_event = stop_event or self._stop_event
        interval = self.config.reconcile_interval_seconds
        logging.info(
            f"Reconcile loop started for {self.config.namespace}/{self.config.deployment} "
            f"(interval {interval}s, cooldown {self.config.cooldown_seconds}s)"
        )

        while not stop_event.is_set():
            try:
                self.reconcile_once()
            except Exception as e:
                logging.error(f"Unexpected error in reconcile tick: {e}")
                logging.error(f"Traceback: {traceback.format_exc()}")
            stop_event.wait(interval)

        logging.info("Reconcile loop stopped")

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, name="reconcile-loop", daemon=True)
        self._thread.start()

    def stop(self, timeout=None):
        """Signal the loop to stop and wait for the in-flight tick to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    # ------------------------------------------------------------------
    # Query surface
    # ------------------------------------------------------------------

    @property
    def current_replicas(self):
        with self._lock:
            return self._state.current

    def audit_events(self):
        with self._lock:
            return self._audit.snapshot()

    def predict(self, rps):
        with self._lock:
            current = self._state.current
        return predict(rps, current, self.config)

    def status(self):
        with self._lock:
            now = self.clock()
            return {
                "current_replicas": self._state.current,
                "cooldown_remaining_seconds": round(self._cooldown.remaining(now), 3),
                "audit_entries": len(self._audit),
                "config": self.config.summary(),
            }
