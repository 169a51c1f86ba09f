"""Ingestion layer.

Adapters that move telemetry from the source into the state container and
on to the dispatch router: the realtime bridge and the fallback resender.
"""

from smartfarm.ingestion.bridge import RealtimeBridge
from smartfarm.ingestion.resender import FallbackResender

__all__ = ["FallbackResender", "RealtimeBridge"]
