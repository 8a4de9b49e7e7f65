"""Shared infrastructure: errors, logging and the engine clock."""
