# breakerlink/engine/__init__.py
"""
Breaker engine and its device link.

Structure:
    breakerlink/engine/
    ├── breaker_engine.py  # BreakerEngine, RequestOutcome
    ├── connection.py      # MonitorConnection (asyncio read loop + writes)
    ├── transport.py       # Transport, StreamTransport, open_tcp_transport
    └── alerts.py          # Notifier, AlertSound and their defaults
"""

from breakerlink.engine.alerts import (
    AlertSound,
    LoggingNotifier,
    Notifier,
    SilentAlertSound,
)
from breakerlink.engine.breaker_engine import BreakerEngine, EngineStats, RequestOutcome
from breakerlink.engine.connection import ConnectionState, MonitorConnection
from breakerlink.engine.transport import StreamTransport, Transport, open_tcp_transport

__all__ = [
    "BreakerEngine",
    "EngineStats",
    "RequestOutcome",
    "MonitorConnection",
    "ConnectionState",
    "Transport",
    "StreamTransport",
    "open_tcp_transport",
    "Notifier",
    "AlertSound",
    "LoggingNotifier",
    "SilentAlertSound",
]
