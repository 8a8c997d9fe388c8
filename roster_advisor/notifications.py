"""Push notification delivery for injury alerts."""

import logging
from abc import ABC, abstractmethod
from typing import Dict

from pydantic import BaseModel, Field

from .data.records import InjuryAlert, User

logger = logging.getLogger(__name__)


class AlertNotification(BaseModel):
    title: str
    body: str
    data: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_alert(cls, alert: InjuryAlert) -> "AlertNotification":
        if alert.recommended_sub_player_name:
            body = (f"Sub recommendation: {alert.recommended_sub_player_name} "
                    f"({alert.recommended_sub_projection or 0.0:.1f} pts)")
        else:
            body = "Check your lineup"

        return cls(
            title=f"{alert.urgency_level.value.upper()}: {alert.injured_player_name} OUT",
            body=body,
            data={
                'alert_id': alert.id,
                'injured_player_id': alert.injured_player_id,
                'substitution_player_id': alert.recommended_sub_player_id or '',
            },
        )


class NotificationDispatcher(ABC):
    """Delivery channel for push notifications."""

    @abstractmethod
    async def send(self, user: User, notification: AlertNotification) -> bool:
        """Deliver a notification; returns whether it was handed off."""


class LoggingDispatcher(NotificationDispatcher):
    """Writes notifications to the log instead of a push service."""

    async def send(self, user: User, notification: AlertNotification) -> bool:
        logger.info(f"Notification for {user.email}: {notification.title} - {notification.body}")
        return True
