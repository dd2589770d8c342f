from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.base import utcnow
from app.db.session import get_db
from app.services.access import FolderAccessGuard, FolderCredential
from app.services.email import Mailer
from app.services.nodes import NodeStore
from app.services.recovery import OtpRecoveryService
from app.services.storage import S3StorageService


def get_storage(request: Request) -> S3StorageService:
    return request.app.state.storage


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer


def get_clock():
    return utcnow


async def get_node_store(db: AsyncSession = Depends(get_db)) -> NodeStore:
    return NodeStore(db)


def get_access_guard() -> FolderAccessGuard:
    return FolderAccessGuard()


def get_folder_credential(
    x_folder_password: str | None = Header(None),
    x_folder_recovery_token: str | None = Header(None),
) -> FolderCredential:
    """Folder credential presented through the x-folder-password / x-folder-recovery-token headers"""
    return FolderCredential(password=x_folder_password or None, recovery_token=x_folder_recovery_token or None)


def get_recovery_service(
    store: NodeStore = Depends(get_node_store),
    mailer: Mailer = Depends(get_mailer),
    clock=Depends(get_clock),
) -> OtpRecoveryService:
    return OtpRecoveryService(store, mailer, clock)
