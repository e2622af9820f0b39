# dalat_notifications/channels/__init__.py
"""
Notification delivery channels.

Each sender is built from explicit configuration and adapts one delivery
mechanism: in-app inbox rows, Web Push, or transactional email. Senders take
rendered content and a destination and return a ``ChannelResult``; they know
nothing about notification types or user preferences.
"""

from .base import ChannelSender
from .email import EmailSender, OutgoingEmail
from .in_app import InAppSender
from .push import PushSender

__all__ = [
    "ChannelSender",
    "EmailSender",
    "OutgoingEmail",
    "InAppSender",
    "PushSender",
]
