"""NotificationPublisher Protocol — outbound port for group notifications."""

from typing import Protocol

from src.sc_notify.domain.events import NotificationEvent


class NotificationPublisherProtocol(Protocol):
    async def publish(self, event: NotificationEvent) -> None: ...
