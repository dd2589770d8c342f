from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool
import logging
import uuid
from app.api.deps import get_access_guard, get_folder_credential, get_node_store
from app.api.v1.auth import get_current_user
from app.api.v1.schemas import CamelModel, serialize_node
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.core.security import get_password_hash
from app.models.node import FOLDER_MIME_TYPE, Node
from app.services.access import FolderAccessGuard, FolderCredential
from app.services.nodes import NodeStore
from app.services.storage import sanitize_filename

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_PASSWORD_BYTES = 72

class FolderCreate(CamelModel):
    name: str = ""
    parent_id: str | None = None
    password: str | None = None
    emoji: str | None = None

class FolderUpdate(CamelModel):
    name: str | None = None
    emoji: str | None = None
    password: str | None = None
    current_password: str | None = None
    recovery_token: str | None = None

def _check_password(password: str) -> None:
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")

@router.post("", status_code=201)
async def create_folder(
    folder_data: FolderCreate,
    current_user: str = Depends(get_current_user),
    store: NodeStore = Depends(get_node_store),
    guard: FolderAccessGuard = Depends(get_access_guard),
    credential: FolderCredential = Depends(get_folder_credential),
):
    """Create a folder, optionally password protected"""
    name = (folder_data.name or "").strip()
    if not name:
        raise ValidationError("Folder name is required")

    parent = None
    if folder_data.parent_id:
        parent = await store.find_folder(folder_data.parent_id)
        if parent is None:
            raise NotFoundError("Parent folder not found")
        await guard.ensure_node_access(store, parent, credential)

    existing = await store.find_one(
        display_name=name,
        parent_id=parent.id if parent else None,
        is_folder=True,
    )
    if existing:
        raise ConflictError("Folder already exists", existingFolder={"id": str(existing.id), "name": existing.display_name})

    password_hash = None
    if folder_data.password:
        _check_password(folder_data.password)
        password_hash = await run_in_threadpool(get_password_hash, folder_data.password)

    folder = Node(
        filename=sanitize_filename(name),
        display_name=name,
        is_folder=True,
        mime_type=FOLDER_MIME_TYPE,
        size=0,
        # Placeholder that satisfies the unique constraint; never resolvable in storage
        storage_key=f"folder_{uuid.uuid4().hex}",
        checksum="folder",
        uploaded_by=current_user,
        parent_id=parent.id if parent else None,
        password_hash=password_hash,
        emoji=folder_data.emoji or None,
    )
    await store.save(folder)
    logger.info(f"Created folder {folder.id} ({'protected' if password_hash else 'open'})")

    return {"success": True, "folder": serialize_node(folder)}

@router.put("/{folder_id}")
async def update_folder(
    folder_id: str,
    folder_data: FolderUpdate,
    current_user: str = Depends(get_current_user),
    store: NodeStore = Depends(get_node_store),
    guard: FolderAccessGuard = Depends(get_access_guard),
    header_credential: FolderCredential = Depends(get_folder_credential),
):
    """Rename, re-label or change the password of a folder.

    A protected folder needs its current password or a recovery token in the
    body; protected ancestors need the x-folder-* headers. An empty
    ``password`` removes protection. Changing the password clears any pending
    recovery code and invalidates outstanding recovery tokens.
    """
    folder = await store.find_folder(folder_id)
    if folder is None:
        raise NotFoundError("Folder not found")

    credential = FolderCredential(
        password=folder_data.current_password or None,
        recovery_token=folder_data.recovery_token or None,
    )
    await guard.ensure(folder, credential)
    # Protected ancestors are opened by the request headers, as for listing
    if folder.parent_id is not None:
        parent = await store.find_by_id(folder.parent_id)
        await guard.ensure_node_access(store, parent, header_credential)

    if folder_data.name is not None:
        name = folder_data.name.strip()
        if not name:
            raise ValidationError("Folder name cannot be empty")
        if name != folder.display_name:
            existing = await store.find_one(
                display_name=name,
                parent_id=folder.parent_id,
                is_folder=True,
                exclude_id=folder.id,
            )
            if existing:
                raise ConflictError("Folder with this name already exists")
            folder.display_name = name
            folder.filename = sanitize_filename(name)

    if folder_data.emoji is not None:
        folder.emoji = folder_data.emoji or None

    credentials_invalidated = False
    if folder_data.password is not None:
        if folder_data.password:
            _check_password(folder_data.password)
            folder.password_hash = await run_in_threadpool(get_password_hash, folder_data.password)
        else:
            folder.password_hash = None
        folder.recovery_otp = None
        folder.recovery_otp_expires = None
        credentials_invalidated = True

    await store.save(folder)
    if credentials_invalidated:
        logger.info(f"Password changed for folder {folder.id}")

    return {
        "success": True,
        "folder": serialize_node(folder),
        "credentialsInvalidated": credentials_invalidated,
    }
