from sqlalchemy import Column, String, DateTime, JSON, Text
import uuid

from voicesched.models.base import Base, utcnow


class CaptureSession(Base):
    __tablename__ = "voice_capture_sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, index=True, nullable=False)
    status = Column(String, nullable=False, default="created")  # created, uploaded, transcribed, parsed, expired, failed
    return_url = Column(Text, nullable=True)
    transcript = Column(Text, nullable=True)
    parse_result = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)
