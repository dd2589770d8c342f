import logging

from python_http_client.exceptions import HTTPError
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail
from starlette.concurrency import run_in_threadpool

from app.config import settings

logger = logging.getLogger(__name__)


class Mailer:
    """Outbound mail to the fixed administrative address.

    With no SendGrid key configured the message is logged instead, so the
    recovery flow keeps working offline.
    """

    def __init__(self, api_key: str | None = None, admin_email: str | None = None, from_email: str | None = None):
        self.api_key = settings.SENDGRID_API_KEY if api_key is None else api_key
        self.admin_email = settings.ADMIN_EMAIL if admin_email is None else admin_email
        self.from_email = (settings.FROM_EMAIL if from_email is None else from_email) or self.admin_email
        self._client = SendGridAPIClient(self.api_key) if self.api_key else None

    async def send(self, subject: str, text: str, html: str | None = None) -> bool:
        if not self.admin_email:
            logger.error("ADMIN_EMAIL not set")
            return False

        if self._client is None:
            logger.info(f"[DEV MODE] Email to {self.admin_email}: {subject} | {text}")
            return True

        message = Mail(
            from_email=self.from_email,
            to_emails=self.admin_email,
            subject=subject,
            plain_text_content=text,
            html_content=html or text,
        )
        try:
            response = await run_in_threadpool(self._client.send, message)
        except (HTTPError, OSError) as e:
            logger.error(f"Error sending email: {e}", exc_info=True)
            return False
        return 200 <= response.status_code < 300

    async def send_otp(self, otp: str) -> bool:
        minutes = settings.OTP_EXPIRE_MINUTES
        return await self.send(
            "Folder Access OTP",
            f"Your OTP is: {otp}. It expires in {minutes} minutes.",
            f"<p>Your OTP is: <strong>{otp}</strong></p><p>It expires in {minutes} minutes.</p>",
        )
