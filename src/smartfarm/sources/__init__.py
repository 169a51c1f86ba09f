"""Telemetry source adapters.

Each adapter implements :class:`~smartfarm.sources.base.TelemetrySource`:
a latest-value subscription plus bounded range queries.
"""

from smartfarm.sources.base import ErrorCallback, Subscription, TelemetrySource, ValueCallback
from smartfarm.sources.firebase import FirebaseSource, FirebaseStream, iter_sse_events
from smartfarm.sources.mqtt import MqttTelemetrySource, decode_telemetry_payload

__all__ = [
    "ErrorCallback",
    "FirebaseSource",
    "FirebaseStream",
    "MqttTelemetrySource",
    "Subscription",
    "TelemetrySource",
    "ValueCallback",
    "decode_telemetry_payload",
    "iter_sse_events",
]
