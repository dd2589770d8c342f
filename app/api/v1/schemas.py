from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from app.models.node import Node


class CamelModel(BaseModel):
    """Request bodies use camelCase on the wire and snake_case in Python"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def serialize_node(node: Node) -> dict:
    return {
        "id": str(node.id),
        "name": node.display_name,
        "filename": node.filename,
        "isFolder": node.is_folder,
        "size": node.size,
        "type": node.mime_type,
        "uploadedAt": node.uploaded_at.isoformat() if node.uploaded_at else None,
        "uploadedBy": node.uploaded_by,
        "parentId": str(node.parent_id) if node.parent_id else None,
        "emoji": node.emoji,
        "isProtected": node.is_protected,
    }
