"""Time-ordered ids for sessions, proposals, orders and allocations.

An id is an entity prefix followed by 16 hex digits:
    <42-bit ms since 2025-01-01><10-bit node><12-bit counter>
Fixed width means plain string order is creation order, which is what keeps
a group's orders and a session's proposals chronological. Ids leave this
process (Redis keys, chat messages, SQL rows) so the node number must be
distinct per running instance (ID_NODE).
"""

import threading
import time

_EPOCH_MS = 1_735_689_600_000  # 2025-01-01T00:00:00Z
_NODE_BITS = 10
_COUNTER_BITS = 12
_COUNTER_MASK = (1 << _COUNTER_BITS) - 1


class IdGenerator:
    def __init__(self, node: int = 0) -> None:
        if not 0 <= node < (1 << _NODE_BITS):
            raise ValueError(f"node must be in [0, {(1 << _NODE_BITS) - 1}], got {node}")
        self._node = node
        self._lock = threading.Lock()
        self._last_ms = 0
        self._counter = 0

    def _tick(self) -> tuple[int, int]:
        with self._lock:
            now_ms = max(time.time_ns() // 1_000_000, self._last_ms)  # clock never runs back
            if now_ms == self._last_ms:
                self._counter = (self._counter + 1) & _COUNTER_MASK
                if self._counter == 0:
                    # 4096 ids in one millisecond: borrow the next one
                    now_ms += 1
            else:
                self._counter = 0
            self._last_ms = now_ms
            return now_ms, self._counter

    def next_id(self, prefix: str = "") -> str:
        ms, counter = self._tick()
        value = ((ms - _EPOCH_MS) << (_NODE_BITS + _COUNTER_BITS)) | (self._node << _COUNTER_BITS) | counter
        return f"{prefix}{value:016x}"


_generator = IdGenerator()


def configure(node: int) -> None:
    """Set this process's node number. Call once at start-up, before any id is issued."""
    global _generator  # noqa: PLW0603
    _generator = IdGenerator(node)


def generate_id(prefix: str = "") -> str:
    return _generator.next_id(prefix)
