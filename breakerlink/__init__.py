# breakerlink/__init__.py
"""
Breaker telemetry and fault-detection engine.

Decodes device telemetry for a master breaker and its load breakers,
decides on/off/trip transitions, encodes operator commands back to the
device and keeps a durable history of every transition.
"""

__version__ = "0.3.0"
