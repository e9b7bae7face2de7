from __future__ import annotations  # Re-export the delivery client

from .client import EnrichedTask, Notification, SessionClient

__all__ = ["EnrichedTask", "Notification", "SessionClient"]
