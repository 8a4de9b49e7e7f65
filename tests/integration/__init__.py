# tests/integration/__init__.py
"""
Integration tests for the breaker link.

These tests run the engine, connection and history store together against
a device simulated by a local TCP server, with configuration loaded from
YAML files in a temporary directory.

Running Integration Tests:
    pytest tests/integration/
"""
