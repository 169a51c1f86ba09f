"""Process-wide telemetry state.

Holds the latest snapshot and the bounded history buffers. Only the
realtime bridge writes here; every other component reads.
"""

from smartfarm.state.store import DEFAULT_HISTORY_CAPACITY, GlobalState, HistoryBuffer

__all__ = ["DEFAULT_HISTORY_CAPACITY", "GlobalState", "HistoryBuffer"]
