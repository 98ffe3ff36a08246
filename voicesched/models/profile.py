from sqlalchemy import Column, String

from voicesched.models.base import Base


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String, primary_key=True)  # same id as the auth provider's user
    timezone = Column(String, nullable=True)
