"""Observability utilities for the session delivery service."""
from .logger import clear_recent, log_event, recent_events

__all__ = ["log_event", "recent_events", "clear_recent"]
