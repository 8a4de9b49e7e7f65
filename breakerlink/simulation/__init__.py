"""Synthetic telemetry for offline and debug runs."""
