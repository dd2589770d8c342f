import logging
import uuid
from typing import Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.node import Node

logger = logging.getLogger(__name__)


def parse_node_id(value) -> Optional[uuid.UUID]:
    """Coerce a client-supplied id; malformed ids resolve to None (treated as not found)"""
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class NodeStore:
    """Metadata store client for file and folder records.

    Every write is a single-row commit; no locks are taken, so concurrent
    edits of the same folder are last-writer-wins.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_id(self, node_id) -> Optional[Node]:
        node_id = parse_node_id(node_id)
        if node_id is None:
            return None
        return await self.db.get(Node, node_id)

    async def find_folder(self, folder_id) -> Optional[Node]:
        node = await self.find_by_id(folder_id)
        if node is None or not node.is_folder:
            return None
        return node

    async def find_children(self, parent_id) -> List[Node]:
        parent_id = parse_node_id(parent_id)
        result = await self.db.execute(
            select(Node)
            .where(Node.parent_id == parent_id if parent_id is not None else Node.parent_id.is_(None))
            .order_by(Node.is_folder.desc(), Node.uploaded_at, Node.id)
        )
        return list(result.scalars().all())

    async def count_children(self, parent_id) -> int:
        result = await self.db.execute(
            select(func.count(Node.id)).where(Node.parent_id == parse_node_id(parent_id))
        )
        return result.scalar() or 0

    async def find_many(self, node_ids: Iterable, *, files_only: bool = False) -> List[Node]:
        ids = [i for i in (parse_node_id(v) for v in node_ids) if i is not None]
        if not ids:
            return []
        query = select(Node).where(Node.id.in_(ids))
        if files_only:
            query = query.where(Node.is_folder.is_(False))
        result = await self.db.execute(query)
        found = {node.id: node for node in result.scalars().all()}
        # Preserve the caller's ordering
        return [found[i] for i in dict.fromkeys(ids) if i in found]

    async def find_one(self, **criteria) -> Optional[Node]:
        """Equality lookup on column values; ``exclude_id`` skips one record"""
        exclude_id = parse_node_id(criteria.pop("exclude_id", None))
        query = select(Node)
        for column, value in criteria.items():
            if column in ("id", "parent_id"):
                value = parse_node_id(value)
            attr = getattr(Node, column)
            query = query.where(attr.is_(None) if value is None else attr == value)
        if exclude_id is not None:
            query = query.where(Node.id != exclude_id)
        result = await self.db.execute(query.limit(1))
        return result.scalars().first()

    async def save(self, node: Node) -> Node:
        self.db.add(node)
        await self.db.commit()
        await self.db.refresh(node)
        return node

    async def delete(self, node: Node) -> None:
        await self.db.delete(node)
        await self.db.commit()
        logger.info(f"Deleted node {node.id}")
