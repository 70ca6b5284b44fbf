"""Notification dispatch for enrollment lifecycle events.

The scheduler hands every notification to a dispatcher after the state change
has been committed. A dispatcher reports delivery as a boolean and never
raises, so a mail outage cannot undo an activation or an unlock.
"""

import asyncio
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from dripcourse.core.logging import get_logger


if TYPE_CHECKING:
    from dripcourse.email.schemas import SendEmailResponse
    from dripcourse.email.service import EmailService
    from dripcourse.enrollments.models import Enrollment


logger = get_logger(__name__)


class NotificationKind(str, Enum):
    """Kinds of notifications the scheduler emits."""

    WELCOME = "welcome"
    WEEK_UNLOCK = "week_unlock"


class NotificationDispatcher(Protocol):
    async def send(
        self,
        kind: NotificationKind,
        enrollment: "Enrollment",
        context: dict[str, Any],
    ) -> bool: ...


def build_portal_link(portal_url: str, access_token: str | None) -> str:
    """Portal URL carrying the access token as a query parameter."""
    if not access_token:
        return portal_url
    return f"{portal_url}?token={access_token}"


class EmailNotificationDispatcher:
    """Deliver notifications as emails through `EmailService`.

    With no email service configured every send is logged and skipped.
    """

    def __init__(
        self,
        email_service: "EmailService | None",
        portal_url: str,
        timeout_seconds: float = 15.0,
        max_attempts: int = 2,
        total_weeks: int = 6,
        unlock_interval_days: int = 7,
    ):
        self.email_service = email_service
        self.portal_url = portal_url
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max(max_attempts, 1)
        self.total_weeks = total_weeks
        self.unlock_interval_days = unlock_interval_days

    async def send(
        self,
        kind: NotificationKind,
        enrollment: "Enrollment",
        context: dict[str, Any],
    ) -> bool:
        """Send one notification; True once an attempt succeeds."""
        log = logger.bind(
            kind=kind.value,
            enrollment_id=str(enrollment.enrollment_id),
            week=context.get("week"),
        )

        if self.email_service is None:
            log.info("notification_skipped", reason="email_disabled")
            return False

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await asyncio.wait_for(
                    self._deliver(kind, enrollment, context),
                    timeout=self.timeout_seconds,
                )
            except TimeoutError:
                log.warning(
                    "notification_timeout",
                    attempt=attempt,
                    timeout_seconds=self.timeout_seconds,
                )
                continue
            except Exception as e:
                log.exception("notification_error", attempt=attempt, error=str(e))
                continue

            if response.success:
                log.info("notification_sent", attempt=attempt)
                return True

            log.warning("notification_rejected", attempt=attempt, error=response.error)

        log.error("notification_failed", attempts=self.max_attempts)
        return False

    async def _deliver(
        self,
        kind: NotificationKind,
        enrollment: "Enrollment",
        context: dict[str, Any],
    ) -> "SendEmailResponse":
        # Imported here: dripcourse.enrollments imports this package at load time.
        from dripcourse.enrollments.content import get_week_content

        portal_link = build_portal_link(self.portal_url, enrollment.access_token)

        if kind == NotificationKind.WELCOME:
            return await self.email_service.send_welcome_email(
                to=enrollment.email,
                portal_link=portal_link,
                first_week=get_week_content(1),
                total_weeks=self.total_weeks,
                interval_days=self.unlock_interval_days,
            )

        if kind == NotificationKind.WEEK_UNLOCK:
            return await self.email_service.send_week_unlocked_email(
                to=enrollment.email,
                portal_link=portal_link,
                week=get_week_content(context["week"]),
            )

        msg = f"Unsupported notification kind: {kind}"
        raise ValueError(msg)
