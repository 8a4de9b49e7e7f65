"""Breaker table, fault detector and history ledger."""
