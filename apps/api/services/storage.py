"""Persistence repository used by the connection lifecycle services."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.connected_account import ConnectedAccount
from models.follower_history import FollowerHistory
from models.social_link import SocialLink


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class LinkStorage(ABC):
    """Repository for connected accounts, social links and follower history."""

    @abstractmethod
    async def get_connected_account(self, profile_id: str, platform: str) -> Optional[ConnectedAccount]:
        raise NotImplementedError

    @abstractmethod
    async def list_connected_accounts(self, profile_id: str) -> List[ConnectedAccount]:
        raise NotImplementedError

    @abstractmethod
    async def save_connected_account(self, account: ConnectedAccount) -> ConnectedAccount:
        raise NotImplementedError

    @abstractmethod
    async def delete_connected_account(self, account: ConnectedAccount) -> None:
        raise NotImplementedError

    @abstractmethod
    async def list_social_links(self, profile_id: str) -> List[SocialLink]:
        raise NotImplementedError

    @abstractmethod
    async def create_social_link(
        self,
        *,
        profile_id: str,
        platform: str,
        url: str,
        display_text: str,
        order: int,
    ) -> SocialLink:
        raise NotImplementedError

    @abstractmethod
    async def delete_social_links_by_platform(self, profile_id: str, platform: str) -> int:
        raise NotImplementedError

    @abstractmethod
    async def append_follower_history(
        self,
        *,
        profile_id: str,
        platform: str,
        follower_count: int,
        recorded_at: Optional[datetime] = None,
    ) -> FollowerHistory:
        raise NotImplementedError

    @abstractmethod
    async def get_previous_follower_count(self, profile_id: str, platform: str) -> Optional[int]:
        """Second-most-recent reading for the pair, if any."""
        raise NotImplementedError

    @abstractmethod
    async def commit(self) -> None:
        raise NotImplementedError


class DatabaseLinkStorage(LinkStorage):
    """SQLAlchemy implementation over an ``AsyncSession``."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_connected_account(self, profile_id: str, platform: str) -> Optional[ConnectedAccount]:
        result = await self.db.execute(
            select(ConnectedAccount)
            .where(
                ConnectedAccount.profile_id == profile_id,
                ConnectedAccount.platform == platform,
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_connected_accounts(self, profile_id: str) -> List[ConnectedAccount]:
        result = await self.db.execute(
            select(ConnectedAccount)
            .where(ConnectedAccount.profile_id == profile_id)
            .order_by(ConnectedAccount.connected_at.asc())
        )
        return list(result.scalars().all())

    async def save_connected_account(self, account: ConnectedAccount) -> ConnectedAccount:
        self.db.add(account)
        await self.db.flush()
        return account

    async def delete_connected_account(self, account: ConnectedAccount) -> None:
        await self.db.delete(account)
        await self.db.flush()

    async def list_social_links(self, profile_id: str) -> List[SocialLink]:
        result = await self.db.execute(
            select(SocialLink)
            .where(SocialLink.profile_id == profile_id)
            .order_by(SocialLink.order.asc())
        )
        return list(result.scalars().all())

    async def create_social_link(
        self,
        *,
        profile_id: str,
        platform: str,
        url: str,
        display_text: str,
        order: int,
    ) -> SocialLink:
        link = SocialLink(
            profile_id=profile_id,
            platform=platform,
            url=url,
            display_text=display_text,
            order=order,
            click_count=0,
        )
        self.db.add(link)
        await self.db.flush()
        return link

    async def delete_social_links_by_platform(self, profile_id: str, platform: str) -> int:
        result = await self.db.execute(
            delete(SocialLink).where(
                SocialLink.profile_id == profile_id,
                SocialLink.platform == platform,
            )
        )
        return int(result.rowcount or 0)

    async def append_follower_history(
        self,
        *,
        profile_id: str,
        platform: str,
        follower_count: int,
        recorded_at: Optional[datetime] = None,
    ) -> FollowerHistory:
        entry = FollowerHistory(
            profile_id=profile_id,
            platform=platform,
            follower_count=int(follower_count),
            recorded_at=recorded_at or datetime.now(timezone.utc),
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def get_previous_follower_count(self, profile_id: str, platform: str) -> Optional[int]:
        result = await self.db.execute(
            select(FollowerHistory.follower_count)
            .where(
                FollowerHistory.profile_id == profile_id,
                FollowerHistory.platform == platform,
            )
            .order_by(FollowerHistory.recorded_at.desc())
            .limit(2)
        )
        counts = list(result.scalars().all())
        return counts[1] if len(counts) > 1 else None

    async def commit(self) -> None:
        await self.db.commit()
