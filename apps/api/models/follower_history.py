"""Follower count time series."""

from sqlalchemy import Column, String, DateTime, Integer, Index
import uuid

from database import Base


class FollowerHistory(Base):
    """Append-only follower count reading for a connected platform."""
    
    __tablename__ = "follower_history"
    
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    profile_id = Column(String, nullable=False)
    platform = Column(String, nullable=False)
    follower_count = Column(Integer, nullable=False, default=0)
    recorded_at = Column(DateTime(timezone=True), nullable=False)
    
    __table_args__ = (
        Index("ix_follower_history_profile_platform_recorded", "profile_id", "platform", "recorded_at"),
    )
