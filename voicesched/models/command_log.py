from sqlalchemy import Column, String, DateTime, JSON, Text, Float, Boolean
import uuid

from voicesched.models.base import Base, utcnow


class CommandLogEntry(Base):
    __tablename__ = "voice_commands_log"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, index=True, nullable=False)
    input_type = Column(String, default="text")  # 'text' or 'audio'
    intent = Column(String, nullable=False)
    raw_transcript = Column(Text, nullable=False)
    proposed_action = Column(JSON, nullable=False)
    confidence = Column(Float, nullable=False, default=0.0)
    needs_clarification = Column(Boolean, nullable=False, default=False)
    clarification_questions = Column(JSON, nullable=True)
    status = Column(String, nullable=False, default="proposed")  # proposed, executed, failed
    block_id = Column(String(36), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    executed_at = Column(DateTime, nullable=True)
