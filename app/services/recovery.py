import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable

from app.config import settings
from app.core.exceptions import NotFoundError, UpstreamError, ValidationError
from app.core.security import constant_time_equals, create_recovery_token
from app.db.base import utcnow
from app.models.node import Node
from app.services.email import Mailer
from app.services.nodes import NodeStore

logger = logging.getLogger(__name__)


class OtpInvalidError(ValidationError):
    message = "Invalid OTP"


class OtpExpiredError(ValidationError):
    message = "OTP expired"


def generate_otp() -> str:
    """Six-digit code in 100000-999999"""
    return str(secrets.randbelow(900000) + 100000)


class OtpRecoveryService:
    """Per-folder recovery state machine.

    Idle (no code) -> OtpIssued (code + expiry stored) -> back to Idle once a
    matching, unexpired code is verified, which mints a recovery token.
    Failed verifications leave the stored state untouched; a new issue
    overwrites any earlier code.
    """

    def __init__(self, store: NodeStore, mailer: Mailer, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.mailer = mailer
        self.clock = clock

    async def issue(self, folder_id) -> Node:
        folder = await self.store.find_folder(folder_id)
        if folder is None:
            raise NotFoundError("Folder not found")
        if not folder.password_hash:
            raise ValidationError("Folder is not password protected")

        otp = generate_otp()
        folder.recovery_otp = otp
        folder.recovery_otp_expires = self.clock() + timedelta(minutes=settings.OTP_EXPIRE_MINUTES)
        await self.store.save(folder)
        logger.info(f"Issued recovery OTP for folder {folder.id}")

        # The stored code stays valid even if delivery fails; the caller may retry the send
        if not await self.mailer.send_otp(otp):
            raise UpstreamError("Failed to send email")
        return folder

    async def verify(self, folder_id, otp: str) -> str:
        folder = await self.store.find_folder(folder_id)
        if folder is None or not folder.recovery_otp or not folder.recovery_otp_expires:
            raise OtpInvalidError("Invalid OTP request")

        if self.clock() > folder.recovery_otp_expires:
            raise OtpExpiredError()

        if not constant_time_equals(folder.recovery_otp, str(otp).strip()):
            raise OtpInvalidError()

        folder.recovery_otp = None
        folder.recovery_otp_expires = None
        await self.store.save(folder)
        logger.info(f"Recovery OTP verified for folder {folder.id}")

        return create_recovery_token(str(folder.id), folder.password_hash)
