import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from starlette.concurrency import run_in_threadpool

from app.core.exceptions import CredentialRejectedError, CredentialRequiredError
from app.core.security import (
    RECOVERY_TOKEN_TYPE,
    constant_time_equals,
    decode_token,
    password_fingerprint,
    verify_password,
)
from app.models.node import Node
from app.services.nodes import NodeStore

logger = logging.getLogger(__name__)

PASSWORD_HEADER = "x-folder-password"
RECOVERY_TOKEN_HEADER = "x-folder-recovery-token"


class AccessOutcome(str, Enum):
    GRANTED = "granted"
    CREDENTIAL_REQUIRED = "credential_required"
    CREDENTIAL_REJECTED = "credential_rejected"


@dataclass(frozen=True)
class FolderCredential:
    """What a request presents for a protected folder: a plaintext password, a recovery token, or both"""
    password: Optional[str] = None
    recovery_token: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.password and not self.recovery_token


@dataclass(frozen=True)
class AccessDecision:
    outcome: AccessOutcome

    @property
    def granted(self) -> bool:
        return self.outcome is AccessOutcome.GRANTED


GRANTED = AccessDecision(AccessOutcome.GRANTED)
REQUIRED = AccessDecision(AccessOutcome.CREDENTIAL_REQUIRED)
REJECTED = AccessDecision(AccessOutcome.CREDENTIAL_REJECTED)


def recovery_token_matches(folder: Node, token: str) -> bool:
    payload = decode_token(token, RECOVERY_TOKEN_TYPE)
    if payload is None:
        return False
    if not constant_time_equals(str(payload.get("sub", "")), str(folder.id)):
        return False
    # A password change since issue invalidates the token
    return constant_time_equals(str(payload.get("pwd", "")), password_fingerprint(folder.password_hash))


class FolderAccessGuard:
    """Decides whether a credential opens a folder.

    Unprotected folders are always open. Missing credentials on a protected
    folder yield CREDENTIAL_REQUIRED so callers can prompt instead of failing.
    """

    async def authorize(self, folder: Node, credential: Optional[FolderCredential]) -> AccessDecision:
        if not folder.password_hash:
            return GRANTED
        if credential is None or credential.is_empty:
            return REQUIRED

        if credential.recovery_token and recovery_token_matches(folder, credential.recovery_token):
            return GRANTED
        if credential.password and await run_in_threadpool(
            verify_password, credential.password, folder.password_hash
        ):
            return GRANTED

        logger.info(f"Rejected credential for folder {folder.id}")
        return REJECTED

    async def ensure(self, folder: Node, credential: Optional[FolderCredential]) -> None:
        decision = await self.authorize(folder, credential)
        if decision.outcome is AccessOutcome.CREDENTIAL_REQUIRED:
            raise CredentialRequiredError(folderId=str(folder.id))
        if decision.outcome is AccessOutcome.CREDENTIAL_REJECTED:
            raise CredentialRejectedError(folderId=str(folder.id))

    async def find_guarding_folder(self, store: NodeStore, node: Optional[Node]) -> Optional[Node]:
        """Nearest protected folder at or above ``node``; protection applies to every descendant"""
        current = node if node is None or node.is_folder else await store.find_by_id(node.parent_id)
        seen = set()
        while current is not None and current.id not in seen:
            if current.is_protected:
                return current
            seen.add(current.id)
            if current.parent_id is None:
                return None
            current = await store.find_by_id(current.parent_id)
        return None

    async def ensure_node_access(
        self,
        store: NodeStore,
        node: Optional[Node],
        credential: Optional[FolderCredential],
    ) -> None:
        guarding = await self.find_guarding_folder(store, node)
        if guarding is not None:
            await self.ensure(guarding, credential)
