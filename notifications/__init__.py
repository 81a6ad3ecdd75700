"""Outbound notifications (email) sent outside the request path."""

from .dispatcher import NotificationDispatcher, get_dispatcher
from .email import EmailNotifier

__all__ = ["EmailNotifier", "NotificationDispatcher", "get_dispatcher"]
