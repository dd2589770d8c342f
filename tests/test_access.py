import asyncio
import uuid
from datetime import timedelta

import pytest

from app.core.exceptions import CredentialRejectedError, CredentialRequiredError
from app.core.security import create_recovery_token, create_session_token, get_password_hash
from app.models.node import Node
from app.services.access import AccessOutcome, FolderAccessGuard, FolderCredential
from fakes import make_file, make_folder


def folder(password=None):
    return Node(
        id=uuid.uuid4(),
        is_folder=True,
        filename="Vault",
        display_name="Vault",
        password_hash=get_password_hash(password) if password else None,
    )


def authorize(node, credential):
    return asyncio.run(FolderAccessGuard().authorize(node, credential)).outcome


def test_unprotected_folder_is_always_open():
    node = folder()
    assert authorize(node, None) is AccessOutcome.GRANTED
    assert authorize(node, FolderCredential(password="anything")) is AccessOutcome.GRANTED


def test_protected_folder_without_credential_requires_one():
    node = folder("hunter2")
    assert authorize(node, None) is AccessOutcome.CREDENTIAL_REQUIRED
    assert authorize(node, FolderCredential(password="")) is AccessOutcome.CREDENTIAL_REQUIRED


def test_password_is_checked_against_hash():
    node = folder("hunter2")
    assert authorize(node, FolderCredential(password="hunter2")) is AccessOutcome.GRANTED
    assert authorize(node, FolderCredential(password="hunter3")) is AccessOutcome.CREDENTIAL_REJECTED


def test_recovery_token_opens_only_its_folder():
    node = folder("hunter2")
    other = folder("hunter2")
    token = create_recovery_token(str(node.id), node.password_hash)

    assert authorize(node, FolderCredential(recovery_token=token)) is AccessOutcome.GRANTED
    assert authorize(other, FolderCredential(recovery_token=token)) is AccessOutcome.CREDENTIAL_REJECTED


def test_expired_recovery_token_is_rejected():
    node = folder("hunter2")
    token = create_recovery_token(str(node.id), node.password_hash, expires_delta=timedelta(seconds=-5))
    assert authorize(node, FolderCredential(recovery_token=token)) is AccessOutcome.CREDENTIAL_REJECTED


def test_recovery_token_stops_working_after_password_change():
    node = folder("hunter2")
    token = create_recovery_token(str(node.id), node.password_hash)
    node.password_hash = get_password_hash("new-password")
    assert authorize(node, FolderCredential(recovery_token=token)) is AccessOutcome.CREDENTIAL_REJECTED


def test_session_token_is_not_a_recovery_token():
    node = folder("hunter2")
    token = create_session_token("admin")
    assert authorize(node, FolderCredential(recovery_token=token)) is AccessOutcome.CREDENTIAL_REJECTED


def test_wrong_token_falls_back_to_password():
    node = folder("hunter2")
    credential = FolderCredential(password="hunter2", recovery_token="garbage")
    assert authorize(node, credential) is AccessOutcome.GRANTED


def test_ensure_raises_with_folder_id():
    node = folder("hunter2")
    guard = FolderAccessGuard()

    with pytest.raises(CredentialRequiredError) as required:
        asyncio.run(guard.ensure(node, None))
    assert required.value.extra == {"folderId": str(node.id)}

    with pytest.raises(CredentialRejectedError) as rejected:
        asyncio.run(guard.ensure(node, FolderCredential(password="nope")))
    assert rejected.value.message == "Invalid password"


def test_protection_covers_descendants(run_with_store):
    async def scenario(store):
        guard = FolderAccessGuard()
        root = await make_folder(store, "Root")
        locked = await make_folder(store, "Locked", root, password="hunter2")
        inner = await make_folder(store, "Inner", locked)
        deep_file = await make_file(store, "deep.txt", inner)
        loose_file = await make_file(store, "loose.txt", root)
        return (
            locked.id,
            await guard.find_guarding_folder(store, inner),
            await guard.find_guarding_folder(store, deep_file),
            await guard.find_guarding_folder(store, loose_file),
            await guard.find_guarding_folder(store, None),
        )

    locked_id, for_inner, for_file, for_loose, for_root = run_with_store(scenario)
    assert for_inner.id == locked_id
    assert for_file.id == locked_id
    assert for_loose is None
    assert for_root is None


def test_nearest_protected_ancestor_guards(run_with_store):
    async def scenario(store):
        guard = FolderAccessGuard()
        outer = await make_folder(store, "Outer", password="outer-pass")
        inner = await make_folder(store, "Inner", outer, password="inner-pass")
        doc = await make_file(store, "doc.txt", inner)

        await guard.ensure_node_access(store, doc, FolderCredential(password="inner-pass"))
        with pytest.raises(CredentialRejectedError):
            await guard.ensure_node_access(store, doc, FolderCredential(password="outer-pass"))
        return True

    assert run_with_store(scenario)
