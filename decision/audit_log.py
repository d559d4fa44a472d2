# decision/audit_log.py

from collections import deque

from backend.config import AUDIT_CAPACITY


class AuditLog:
    """Most recent decisions, oldest first. Appending past capacity drops the oldest."""

    def __init__(self, capacity=AUDIT_CAPACITY):
        if capacity < 1:
            raise ValueError(f"Audit capacity must be >= 1, got {capacity}")
        self._entries = deque(maxlen=capacity)

    @property
    def capacity(self):
        return self._entries.maxlen

    def append(self, decision):
        self._entries.append(decision)

    def snapshot(self):
        return list(self._entries)

    def __len__(self):
        return len(self._entries)
