from sqlalchemy import Column, String, DateTime, JSON, Text, Boolean, Index
import uuid

from voicesched.models.base import Base, utcnow


class Block(Base):
    """A schedule entry. Rows are soft-deleted via ``deleted_at``."""

    __tablename__ = "blocks"
    __table_args__ = (
        Index("ix_blocks_user_date_start", "user_id", "date", "start_time"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, index=True, nullable=False)
    date = Column(String(10), nullable=False)  # YYYY-MM-DD
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=True)
    block_type = Column(String, nullable=False, default="workout")
    title = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    payload = Column(JSON, nullable=True)
    is_planned = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
    deleted_at = Column(DateTime, nullable=True)
