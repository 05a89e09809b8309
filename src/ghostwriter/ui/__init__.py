"""UI package holding the desktop application's widgets and controllers."""

from .events import EventBus

__all__ = ["EventBus"]
