"""Social link model."""

from sqlalchemy import Column, String, DateTime, Integer
import uuid

from database import Base


class SocialLink(Base):
    """Link shown on a profile page."""
    
    __tablename__ = "social_links"
    
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    profile_id = Column(String, nullable=False, index=True)
    platform = Column(String, nullable=False)
    url = Column(String, nullable=False)
    display_text = Column(String, nullable=False)
    order = Column(Integer, nullable=False, default=0)
    click_count = Column(Integer, nullable=False, default=0)
    expires_at = Column(DateTime(timezone=True), nullable=True)
