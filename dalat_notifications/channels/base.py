# dalat_notifications/channels/base.py
"""
Base class for notification delivery channels.

Every sender:
- decides at construction whether it can deliver (``is_enabled``)
- never raises from ``send``; failures come back as a ``ChannelResult``
- knows nothing about notification types or user preferences
"""

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, Optional

from ..types import ChannelResult, NotificationChannel


class ChannelSender(ABC):
    channel: ClassVar[NotificationChannel]
    channel_name: ClassVar[str]

    # Reported by every call while the sender is not configured
    config_error: Optional[str] = None

    def is_enabled(self) -> bool:
        return self.config_error is None

    def not_configured(self) -> ChannelResult:
        return ChannelResult.failure(self.channel, self.config_error or f"{self.channel_name} not configured")

    def ok(self, message_id: Optional[str] = None) -> ChannelResult:
        return ChannelResult.ok(self.channel, message_id=message_id)

    def failure(self, error: str) -> ChannelResult:
        return ChannelResult.failure(self.channel, error)

    @abstractmethod
    async def send(self, *args: Any, **kwargs: Any) -> ChannelResult:
        """Deliver rendered content to one destination."""

    def get_config(self) -> Dict[str, Any]:
        """Channel status for diagnostics."""
        return {
            "channel_id": self.channel.value,
            "channel_name": self.channel_name,
            "enabled": self.is_enabled(),
            "error": self.config_error,
        }
