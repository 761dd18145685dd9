"""Connected account model for linked OAuth identities."""

from sqlalchemy import Column, String, DateTime, Text, UniqueConstraint
from sqlalchemy.sql import func
import uuid

from database import Base


class ConnectedAccount(Base):
    """OAuth-linked provider account for a profile."""
    
    __tablename__ = "connected_accounts"
    
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    profile_id = Column(String, nullable=False, index=True)
    platform = Column(String, nullable=False)  # instagram, twitter, linkedin, github, youtube
    account_id = Column(String, nullable=False)  # Provider-specific ID
    username = Column(String, nullable=False)
    access_token_encrypted = Column(Text, nullable=False)
    refresh_token_encrypted = Column(Text, nullable=True)
    token_expires_at = Column(DateTime(timezone=True), nullable=True)
    connected_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    
    # One connection per provider per profile
    __table_args__ = (
        UniqueConstraint("profile_id", "platform", name="uq_connected_account_profile_platform"),
    )
