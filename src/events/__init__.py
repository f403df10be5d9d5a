"""Async event bus and its audit subscriber."""

from src.events.emitter import emit, subscribe, unsubscribe

__all__ = ["emit", "subscribe", "unsubscribe"]
