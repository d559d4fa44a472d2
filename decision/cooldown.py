# decision/cooldown.py

class CooldownGate:
    """
    Single global timer between successful scale actions.

    A recent scale in either direction blocks the next one until the
    cooldown has elapsed. Times are plain seconds from a monotonic clock.
    """

    def __init__(self, cooldown_seconds, last_scale_time=None):
        self.cooldown_seconds = cooldown_seconds
        self.last_scale_time = last_scale_time

    def allow(self, now):
        if self.last_scale_time is None:
            return True
        return now - self.last_scale_time >= self.cooldown_seconds

    def remaining(self, now):
        if self.last_scale_time is None:
            return 0.0
        return max(0.0, self.cooldown_seconds - (now - self.last_scale_time))

    def record(self, now):
        self.last_scale_time = now
