"""Persistence layer and access-code subsystem for a subscription app."""

__version__ = "1.0.0"
