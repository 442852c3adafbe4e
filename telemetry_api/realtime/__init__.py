"""Difusión de eventos en tiempo real (WebSocket + relay Redis)."""

from .fanout import EventFanout, EventName, Subscriber

__all__ = ["EventFanout", "EventName", "Subscriber"]
