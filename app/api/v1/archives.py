from fastapi import APIRouter, Depends
from typing import List
import asyncio
import logging
from app.api.deps import get_access_guard, get_folder_credential, get_node_store, get_storage
from app.api.v1.auth import get_current_user
from app.api.v1.schemas import CamelModel
from app.config import settings
from app.core.exceptions import NotFoundError, UpstreamError, ValidationError
from app.models.node import Node
from app.services.access import FolderAccessGuard, FolderCredential
from app.services.archive import ArchiveResponse, ArchiveStream, folder_archive_name, selection_archive_name
from app.services.nodes import NodeStore
from app.services.storage import S3StorageService
from app.services.tree import ArchiveEntry, entry_for_file, walk_folder

logger = logging.getLogger(__name__)

router = APIRouter()

class ZipExportRequest(CamelModel):
    file_ids: List[str] | None = None
    folder_id: str | None = None

async def _folder_entries(
    folder: Node,
    store: NodeStore,
    guard: FolderAccessGuard,
    credential: FolderCredential,
) -> List[ArchiveEntry]:
    await guard.ensure_node_access(store, folder, credential)

    # Protected sub-folders are only entered when the same credential opens them
    refused: List[Node] = []

    async def can_enter(subfolder: Node) -> bool:
        if (await guard.authorize(subfolder, credential)).granted:
            return True
        refused.append(subfolder)
        return False

    try:
        entries = await asyncio.wait_for(
            walk_folder(store, folder, can_enter=can_enter, max_entries=settings.ZIP_MAX_ENTRIES),
            timeout=settings.ZIP_WALK_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        logger.error(f"Walk of folder {folder.id} exceeded {settings.ZIP_WALK_TIMEOUT_SECONDS}s")
        raise UpstreamError("Folder walk timed out")

    if not entries:
        if refused:
            # Everything exportable sits behind folders this credential does not open
            await guard.ensure(refused[0], credential)
        raise ValidationError("Folder is empty")
    return entries

async def _selected_files(
    file_ids: List[str],
    store: NodeStore,
    guard: FolderAccessGuard,
    credential: FolderCredential,
) -> List[Node]:
    files = await store.find_many(file_ids, files_only=True)
    if not files:
        raise NotFoundError("No valid files found")

    allowed, denied_by = [], None
    for node in files:
        guarding = await guard.find_guarding_folder(store, node)
        if guarding is None or (await guard.authorize(guarding, credential)).granted:
            allowed.append(node)
        elif denied_by is None:
            denied_by = guarding

    if not allowed:
        # Surface the required/invalid distinction of the first refusal
        await guard.ensure(denied_by, credential)
    if len(allowed) < len(files):
        logger.info(f"Zip export skipped {len(files) - len(allowed)} files in protected folders")
    return allowed

@router.post("/zip-export")
async def zip_export(
    body: ZipExportRequest,
    current_user: str = Depends(get_current_user),
    store: NodeStore = Depends(get_node_store),
    storage: S3StorageService = Depends(get_storage),
    guard: FolderAccessGuard = Depends(get_access_guard),
    credential: FolderCredential = Depends(get_folder_credential),
):
    """Stream a folder tree, or a selection of files, as one zip archive"""
    if not body.file_ids and not body.folder_id:
        raise ValidationError("No files or folder specified")

    if body.folder_id:
        folder = await store.find_folder(body.folder_id)
        if folder is None:
            raise NotFoundError("Folder not found")
        entries = await _folder_entries(folder, store, guard, credential)
        zip_name = folder_archive_name(folder.display_name)
    else:
        files = await _selected_files(body.file_ids, store, guard, credential)
        entries = [entry_for_file(node) for node in files]
        zip_name = selection_archive_name([node.display_name for node in files])

    logger.info(f"Streaming {zip_name} with {len(entries)} entries")
    archive = ArchiveStream(entries, storage.get_stream, queue_size=settings.ZIP_CHUNK_QUEUE_SIZE)
    return ArchiveResponse(archive, zip_name)
