"""Email service using Gmail API with Service Account.

Uses domain-wide delegation to send emails on behalf of a Google Workspace user.
The service account must have domain-wide delegation enabled in Google Admin Console
with scope: https://www.googleapis.com/auth/gmail.send
"""

import asyncio
import base64
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import TYPE_CHECKING

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from dripcourse.core.logging import get_logger
from dripcourse.enrollments.content import COURSE_NAME, WeekContent

from .schemas import EmailRecipient, SendEmailRequest, SendEmailResponse
from .templates import render_week_unlocked, render_welcome


if TYPE_CHECKING:
    from googleapiclient._apis.gmail.v1 import GmailResource


logger = get_logger(__name__)

GMAIL_SCOPES = ["https://www.googleapis.com/auth/gmail.send"]


class EmailService:
    """Service for sending emails via Gmail API."""

    def __init__(
        self,
        credentials_path: str,
        sender_address: str,
        sender_name: str = COURSE_NAME,
        support_address: str | None = None,
    ):
        """Initialize Gmail API service.

        Args:
            credentials_path: Path to service account JSON file
            sender_address: Email address to send from (must be in Google Workspace)
            sender_name: Display name for sender
            support_address: Address shown to students for help requests
        """
        self.credentials_path = credentials_path
        self.sender_address = sender_address
        self.sender_name = sender_name
        self.support_address = support_address or sender_address
        self._service: GmailResource | None = None

        if not Path(credentials_path).exists():
            logger.warning(
                "email_credentials_not_found",
                path=credentials_path,
                message="Gmail API will not be available",
            )

    def _get_service(self) -> "GmailResource":
        """Get or create the Gmail API service (lazy).

        Raises:
            FileNotFoundError: If credentials file doesn't exist
        """
        if self._service is not None:
            return self._service

        credentials_file = Path(self.credentials_path)
        if not credentials_file.exists():
            msg = f"Credentials file not found: {self.credentials_path}"
            raise FileNotFoundError(msg)

        try:
            credentials = service_account.Credentials.from_service_account_file(
                str(credentials_file),
                scopes=GMAIL_SCOPES,
            )
            delegated_credentials = credentials.with_subject(self.sender_address)

            self._service = build(
                "gmail",
                "v1",
                credentials=delegated_credentials,
                cache_discovery=False,
            )

            logger.info("gmail_service_initialized", sender=self.sender_address)
            return self._service

        except Exception as e:
            logger.exception(
                "gmail_service_init_failed",
                error=str(e),
                credentials_path=self.credentials_path,
            )
            raise

    def _format_address(self, recipient: EmailRecipient) -> str:
        if recipient.name:
            return f"{recipient.name} <{recipient.email}>"
        return recipient.email

    def _create_message(self, request: SendEmailRequest) -> dict:
        """Create email message in Gmail API format.

        Returns:
            Dict with 'raw' key containing base64url encoded message
        """
        message = MIMEMultipart("alternative")
        message["From"] = f"{self.sender_name} <{self.sender_address}>"
        message["To"] = ", ".join(self._format_address(r) for r in request.to)
        message["Subject"] = request.subject

        if request.reply_to:
            message["Reply-To"] = request.reply_to

        # Plain text first, then HTML (clients prefer the last part)
        if request.body_text:
            message.attach(MIMEText(request.body_text, "plain", "utf-8"))
        message.attach(MIMEText(request.body_html, "html", "utf-8"))

        raw_message = base64.urlsafe_b64encode(message.as_bytes()).decode("utf-8")
        return {"raw": raw_message}

    async def send_email(self, request: SendEmailRequest) -> SendEmailResponse:
        """Send an email via Gmail API.

        Failures are reported in the response, never raised.
        """
        try:
            service = self._get_service()
            message = self._create_message(request)

            # The discovery client is blocking
            result = await asyncio.to_thread(
                service.users().messages().send(userId="me", body=message).execute
            )

            logger.info(
                "email_sent",
                message_id=result.get("id"),
                thread_id=result.get("threadId"),
                subject=request.subject[:50],
            )

            return SendEmailResponse(
                success=True,
                message_id=result.get("id"),
                thread_id=result.get("threadId"),
            )

        except HttpError as e:
            error_message = str(e)
            logger.exception(
                "email_send_failed",
                error=error_message,
                subject=request.subject[:50],
            )
            return SendEmailResponse(
                success=False,
                error=f"Gmail API error: {error_message}",
            )

        except FileNotFoundError as e:
            logger.error("email_credentials_missing", error=str(e))
            return SendEmailResponse(
                success=False,
                error="Email service not configured: credentials file missing",
            )

        except Exception as e:
            logger.exception("email_send_unexpected_error", error=str(e))
            return SendEmailResponse(
                success=False,
                error=f"Unexpected error: {e!s}",
            )

    async def send_simple_email(
        self,
        to: str,
        subject: str,
        body_html: str,
        body_text: str | None = None,
        to_name: str | None = None,
    ) -> SendEmailResponse:
        """Send a single-recipient email (convenience method)."""
        request = SendEmailRequest(
            to=[EmailRecipient(email=to, name=to_name)],
            subject=subject,
            body_html=body_html,
            body_text=body_text,
            reply_to=self.support_address,
        )
        return await self.send_email(request)

    async def send_welcome_email(
        self,
        to: str,
        portal_link: str,
        first_week: WeekContent,
        total_weeks: int = 6,
        interval_days: int = 7,
    ) -> SendEmailResponse:
        """Send the welcome email with the portal access link.

        Args:
            to: Student email address
            portal_link: Portal URL including the access token
            first_week: Content of week 1
            total_weeks: Course length in weeks
            interval_days: Days between unlocks
        """
        subject = f"Welcome to {COURSE_NAME} - Your Journey Begins Now!"
        body_html, body_text = render_welcome(
            email=to,
            portal_link=portal_link,
            first_week=first_week,
            support_email=self.support_address,
            total_weeks=total_weeks,
            interval_days=interval_days,
        )
        return await self.send_simple_email(
            to=to,
            subject=subject,
            body_html=body_html,
            body_text=body_text,
        )

    async def send_week_unlocked_email(
        self,
        to: str,
        portal_link: str,
        week: WeekContent,
    ) -> SendEmailResponse:
        """Send the notice that a new week of content is available."""
        subject = f"Week {week.week} is Now Available: {week.title}"
        body_html, body_text = render_week_unlocked(week=week, portal_link=portal_link)
        return await self.send_simple_email(
            to=to,
            subject=subject,
            body_html=body_html,
            body_text=body_text,
        )
