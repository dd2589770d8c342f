from sqlalchemy import Column, String, Boolean, BigInteger, ForeignKey, DateTime, Index, Uuid
import uuid
from app.db.base import Base, TimestampMixin, utcnow

FOLDER_MIME_TYPE = "application/x-directory"


class Node(Base, TimestampMixin):
    """A file or a folder. Folders carry no storage payload and report size 0."""
    __tablename__ = "nodes"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    parent_id = Column(Uuid(as_uuid=True), ForeignKey("nodes.id", ondelete="RESTRICT"), index=True)
    is_folder = Column(Boolean, nullable=False, default=False)

    # Names
    filename = Column(String(255), nullable=False, index=True)
    display_name = Column(String(500), nullable=False)

    # Payload
    storage_key = Column(String(1024), nullable=False, unique=True)
    checksum = Column(String(64), nullable=False, index=True)
    size = Column(BigInteger, nullable=False, default=0)
    mime_type = Column(String(255), nullable=False)
    uploaded_at = Column(DateTime, nullable=False, default=utcnow)
    uploaded_by = Column(String(255))

    # Folder protection
    password_hash = Column(String(255))
    recovery_otp = Column(String(6))
    recovery_otp_expires = Column(DateTime)
    emoji = Column(String(32))

    __table_args__ = (
        Index("ix_nodes_name_size_parent", "display_name", "size", "parent_id"),
    )

    @property
    def is_protected(self) -> bool:
        return bool(self.is_folder and self.password_hash)

    def __repr__(self):
        kind = "folder" if self.is_folder else "file"
        return f"<Node {kind} {self.id} {self.display_name!r}>"
