"""Journal entry model (owned by the journaling app, read here for "recorded today")."""

import uuid

from sqlalchemy import Boolean, Column, Index, Text
from sqlalchemy.dialects.postgresql import UUID

from ..database.base import Base, UTCDateTime, utcnow


class Entry(Base):
    __tablename__ = "entries"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False)
    content = Column(Text, default="")
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    __table_args__ = (Index("idx_entries_user_created", "user_id", "created_at"),)
