from fastapi import APIRouter, Depends, Form, Query, UploadFile, File as FastAPIFile
from fastapi.responses import JSONResponse, RedirectResponse
from typing import List
import hashlib
import logging
from app.api.deps import get_access_guard, get_folder_credential, get_node_store, get_storage
from app.api.v1.auth import get_current_user
from app.api.v1.schemas import serialize_node
from app.config import settings
from app.core.exceptions import AppError, ConflictError, NotFoundError, UpstreamError, ValidationError
from app.models.node import Node
from app.services.access import FolderAccessGuard, FolderCredential
from app.services.nodes import NodeStore
from app.services.storage import S3StorageService, StorageError, generate_storage_key, sanitize_filename

logger = logging.getLogger(__name__)

router = APIRouter()

async def _resolve_parent(
    parent_id: str | None,
    store: NodeStore,
    guard: FolderAccessGuard,
    credential: FolderCredential,
) -> Node | None:
    if not parent_id:
        return None
    parent = await store.find_folder(parent_id)
    if parent is None:
        raise NotFoundError("Folder not found")
    await guard.ensure_node_access(store, parent, credential)
    return parent

async def _store_upload(
    upload: UploadFile,
    parent: Node | None,
    uploaded_by: str,
    store: NodeStore,
    storage: S3StorageService,
) -> Node:
    """Validate, deduplicate and persist a single uploaded file"""
    if not upload.filename:
        raise ValidationError("No file provided")

    max_size = settings.MAX_FILE_SIZE_MB * 1024 * 1024
    data = await upload.read(max_size + 1)
    if len(data) > max_size:
        raise ValidationError(f"File too large. Maximum size is {settings.MAX_FILE_SIZE_MB}MB")

    checksum = hashlib.md5(data).hexdigest()
    size = len(data)
    parent_id = parent.id if parent else None

    existing = await store.find_one(checksum=checksum, is_folder=False)
    if existing:
        raise ConflictError(
            "Duplicate file detected",
            message="A file with identical content already exists",
            existingFile={"id": str(existing.id), "name": existing.display_name},
        )

    existing = await store.find_one(display_name=upload.filename, size=size, parent_id=parent_id)
    if existing:
        raise ConflictError(
            "Duplicate file detected",
            message="A file with the same name and size already exists",
            existingFile={"id": str(existing.id), "name": existing.display_name},
        )

    content_type = upload.content_type or "application/octet-stream"
    storage_key = generate_storage_key(upload.filename)
    try:
        await storage.put(data, storage_key, content_type)
    except StorageError as e:
        logger.error(f"Upload of {upload.filename} failed: {e}", exc_info=True)
        raise UpstreamError("Failed to upload file")

    node = Node(
        filename=sanitize_filename(upload.filename),
        display_name=upload.filename,
        is_folder=False,
        mime_type=content_type,
        size=size,
        storage_key=storage_key,
        checksum=checksum,
        uploaded_by=uploaded_by,
        parent_id=parent_id,
    )
    await store.save(node)
    logger.info(f"Uploaded file {node.id} ({size} bytes)")
    return node

@router.get("")
async def list_files(
    parent_id: str | None = Query(None, alias="parentId"),
    current_user: str = Depends(get_current_user),
    store: NodeStore = Depends(get_node_store),
    guard: FolderAccessGuard = Depends(get_access_guard),
    credential: FolderCredential = Depends(get_folder_credential),
):
    """List the children of a folder, or the root level when no parent is given"""
    parent = await _resolve_parent(parent_id, store, guard, credential)
    children = await store.find_children(parent.id if parent else None)
    return {
        "success": True,
        "folder": serialize_node(parent) if parent else None,
        "files": [serialize_node(node) for node in children],
    }

@router.post("/upload", status_code=201)
async def upload_file(
    file: UploadFile | None = FastAPIFile(None),
    parent_id: str | None = Form(None, alias="parentId"),
    current_user: str = Depends(get_current_user),
    store: NodeStore = Depends(get_node_store),
    storage: S3StorageService = Depends(get_storage),
    guard: FolderAccessGuard = Depends(get_access_guard),
    credential: FolderCredential = Depends(get_folder_credential),
):
    """Upload one file into the root or a folder"""
    if file is None:
        raise ValidationError("No file provided")

    parent = await _resolve_parent(parent_id, store, guard, credential)
    node = await _store_upload(file, parent, current_user, store, storage)
    return {"success": True, "message": "File uploaded successfully", "file": serialize_node(node)}

@router.post("/upload/batch")
async def upload_files(
    files: List[UploadFile] = FastAPIFile(...),
    parent_id: str | None = Form(None, alias="parentId"),
    current_user: str = Depends(get_current_user),
    store: NodeStore = Depends(get_node_store),
    storage: S3StorageService = Depends(get_storage),
    guard: FolderAccessGuard = Depends(get_access_guard),
    credential: FolderCredential = Depends(get_folder_credential),
):
    """Upload several files; each failure is reported without losing the successes"""
    parent = await _resolve_parent(parent_id, store, guard, credential)

    uploaded, failed = [], []
    for upload in files:
        try:
            node = await _store_upload(upload, parent, current_user, store, storage)
        except AppError as e:
            failed.append({"name": upload.filename, "error": e.message, **e.extra})
            continue
        uploaded.append(serialize_node(node))

    status_code = 201 if uploaded else 400
    content = {"success": bool(uploaded), "uploaded": uploaded, "failed": failed}
    if not uploaded:
        content["error"] = "All uploads failed"
    return JSONResponse(status_code=status_code, content=content)

@router.get("/{file_id}/download")
async def download_file(
    file_id: str,
    current_user: str = Depends(get_current_user),
    store: NodeStore = Depends(get_node_store),
    storage: S3StorageService = Depends(get_storage),
    guard: FolderAccessGuard = Depends(get_access_guard),
    credential: FolderCredential = Depends(get_folder_credential),
):
    """Redirect to the storage URL of a file"""
    node = await store.find_by_id(file_id)
    if node is None:
        raise NotFoundError("File not found")
    if node.is_folder:
        raise ValidationError("Folders are downloaded through zip export")

    await guard.ensure_node_access(store, node, credential)
    return RedirectResponse(storage.public_url(node.storage_key))

@router.delete("/{file_id}")
async def delete_file(
    file_id: str,
    current_user: str = Depends(get_current_user),
    store: NodeStore = Depends(get_node_store),
    storage: S3StorageService = Depends(get_storage),
    guard: FolderAccessGuard = Depends(get_access_guard),
    credential: FolderCredential = Depends(get_folder_credential),
):
    """Delete a file, or a folder that has no contents"""
    item = await store.find_by_id(file_id)
    if item is None:
        raise NotFoundError("Item not found")

    await guard.ensure_node_access(store, item, credential)

    if item.is_folder:
        if await store.count_children(item.id) > 0:
            raise ValidationError(
                "Cannot delete folder with contents. Please delete all files and subfolders first."
            )
    else:
        try:
            await storage.delete(item.storage_key)
        except StorageError as e:
            # Metadata is removed regardless; the orphaned object is only logged
            logger.error(f"Storage deletion error for {item.storage_key}: {e}")

    await store.delete(item)

    return {"success": True, "message": f"{'Folder' if item.is_folder else 'File'} deleted successfully"}
