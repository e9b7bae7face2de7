"""Shared controller wiring and error translation for the routers."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi import HTTPException

from delivery.controller import SessionController
from delivery.errors import DeliveryError
from storage.store import Store, build_store

logger = logging.getLogger(__name__)

_controller: Optional[SessionController] = None


def get_controller() -> SessionController:
    global _controller
    if _controller is None:
        _controller = SessionController(build_store())
    return _controller


def use_store(store: Store) -> SessionController:
    """Rebind the API to ``store``; tests and the CLI seed through this."""

    global _controller
    _controller = SessionController(store)
    return _controller


@contextmanager
def http_errors() -> Iterator[None]:
    try:
        yield
    except DeliveryError as exc:
        if exc.status_code >= 500:
            logger.exception("Delivery request failed")
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc


__all__ = ["get_controller", "http_errors", "use_store"]
