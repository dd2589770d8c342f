import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

from app.core.exceptions import PayloadTooLargeError
from app.models.node import Node
from app.services.nodes import NodeStore

logger = logging.getLogger(__name__)

FolderFilter = Callable[[Node], Awaitable[bool]]


@dataclass(frozen=True)
class ArchiveEntry:
    storage_key: str
    archive_path: str
    modified_at: Optional[datetime] = None


def safe_segment(name: str) -> str:
    """A single archive path component; separators and dot-names cannot escape the archive root"""
    cleaned = (name or "").replace("/", "_").replace("\\", "_").strip()
    if cleaned in ("", ".", ".."):
        return "_"
    return cleaned


def entry_for_file(node: Node, prefix: str = "") -> ArchiveEntry:
    return ArchiveEntry(
        storage_key=node.storage_key,
        archive_path=f"{prefix}{safe_segment(node.display_name)}",
        modified_at=node.uploaded_at,
    )


async def walk_folder(
    store: NodeStore,
    folder: Node,
    *,
    can_enter: Optional[FolderFilter] = None,
    max_entries: Optional[int] = None,
) -> List[ArchiveEntry]:
    """List every file below ``folder`` with its path relative to ``folder``.

    Depth-first in the store's child order. An explicit stack of child
    iterators replaces recursion, so tree depth never touches the call stack.
    ``can_enter`` decides whether a sub-folder is descended into; sub-folders
    themselves never produce entries.
    """
    entries: List[ArchiveEntry] = []
    visited = {folder.id}
    stack = [(iter(await store.find_children(folder.id)), "")]

    while stack:
        children, prefix = stack[-1]
        child = next(children, None)
        if child is None:
            stack.pop()
            continue

        if child.is_folder:
            if child.id in visited:
                logger.warning(f"Cycle detected at folder {child.id}; skipping")
                continue
            if can_enter is not None and not await can_enter(child):
                logger.info(f"Skipping folder {child.id} during walk: not authorized")
                continue
            visited.add(child.id)
            grandchildren = await store.find_children(child.id)
            stack.append((iter(grandchildren), f"{prefix}{safe_segment(child.display_name)}/"))
        elif child.storage_key:
            entries.append(entry_for_file(child, prefix))
            if max_entries is not None and len(entries) > max_entries:
                raise PayloadTooLargeError(
                    f"Folder contains more than {max_entries} files; export refused"
                )

    return entries
