"""Profile model for link-in-bio pages."""

from sqlalchemy import Column, String, Text
import uuid

from database import Base


class Profile(Base):
    """Public link-in-bio profile."""

    __tablename__ = "profiles"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    bio = Column(Text, nullable=True)
    avatar_url = Column(String, nullable=True)
