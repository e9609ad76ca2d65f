"""
Notification Gateway

Default NotificationGateway: records every lifecycle message through logging.
Message content and transport belong to a delivery service outside this
backend; swap the gateway in ``app.api.dependencies`` to wire one in.
"""

import logging
from typing import Any

from app.domain.interfaces import NotificationEvent, NotificationGateway


logger = logging.getLogger(__name__)


class LoggingNotificationGateway(NotificationGateway):
    """Logs user and guardian notifications instead of delivering them."""

    async def notify_user(
        self,
        email: str,
        name: str,
        event: NotificationEvent,
        **context: Any,
    ) -> None:
        logger.info(f"Notify user {email} ({name}): {event.value} {context or ''}".rstrip())

    async def notify_guardian(
        self,
        guardian_email: str,
        subject_name: str,
        event: NotificationEvent,
        **context: Any,
    ) -> None:
        logger.info(
            f"Notify guardian {guardian_email} about {subject_name}: "
            f"{event.value} {context or ''}".rstrip()
        )
