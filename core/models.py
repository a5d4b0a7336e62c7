"""
Core data models for the photo-sharing API.

Users are keyed by the identity provider's id; every other row gets a random
hex id. Photos carry denormalized like/comment counters maintained by
`services.counters`.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from sqlalchemy import JSON, Column, DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp, as stored in every table"""
    return datetime.now(timezone.utc)


def timestamp_field(index: bool = False):
    return Field(
        default_factory=utcnow, sa_type=DateTime(timezone=True), index=index
    )


def new_id() -> str:
    return uuid.uuid4().hex


class NotificationType(str, Enum):
    LIKE = "like"
    COMMENT = "comment"
    REPLY = "reply"
    FOLLOW = "follow"
    MENTION = "mention"


class User(SQLModel, table=True):
    """Local mirror of an identity-provider account"""

    __tablename__ = "users"

    id: str = Field(primary_key=True, max_length=255)
    name: Optional[str] = Field(default=None, max_length=255)
    username: str = Field(unique=True, index=True, max_length=255)
    email: str = Field(default="", max_length=255)
    bio: Optional[str] = Field(default=None, max_length=2000)
    avatar: Optional[str] = Field(default=None, max_length=1024)
    location: Optional[str] = Field(default=None, max_length=255)
    is_private: bool = Field(default=False)
    created_at: datetime = timestamp_field()
    updated_at: datetime = timestamp_field()

    @property
    def display_name(self) -> str:
        return self.name or self.username or "Anonymous"


class Photo(SQLModel, table=True):
    __tablename__ = "photos"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    user_id: str = Field(foreign_key="users.id", ondelete="CASCADE", index=True)
    url: str = Field(max_length=1024)
    title: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    like_count: int = Field(default=0)
    comment_count: int = Field(default=0)
    created_at: datetime = timestamp_field(index=True)
    updated_at: datetime = timestamp_field()


class Like(SQLModel, table=True):
    __tablename__ = "likes"
    __table_args__ = (
        UniqueConstraint("user_id", "photo_id", name="uq_likes_user_photo"),
    )

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    user_id: str = Field(foreign_key="users.id", ondelete="CASCADE", index=True)
    photo_id: str = Field(foreign_key="photos.id", ondelete="CASCADE", index=True)
    created_at: datetime = timestamp_field()


class Comment(SQLModel, table=True):
    """
    A comment on a photo. `parent_id` set means the row is a reply; replies
    only ever point at top-level comments.
    """

    __tablename__ = "comments"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    content: str = Field(max_length=2000)
    user_id: str = Field(foreign_key="users.id", ondelete="CASCADE", index=True)
    photo_id: str = Field(foreign_key="photos.id", ondelete="CASCADE", index=True)
    parent_id: Optional[str] = Field(
        default=None, foreign_key="comments.id", ondelete="CASCADE", index=True
    )
    created_at: datetime = timestamp_field()
    updated_at: datetime = timestamp_field()

    @property
    def is_reply(self) -> bool:
        return self.parent_id is not None


class Follow(SQLModel, table=True):
    __tablename__ = "follows"
    __table_args__ = (
        UniqueConstraint(
            "follower_id", "following_id", name="uq_follows_follower_following"
        ),
    )

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    follower_id: str = Field(foreign_key="users.id", ondelete="CASCADE", index=True)
    following_id: str = Field(foreign_key="users.id", ondelete="CASCADE", index=True)
    created_at: datetime = timestamp_field()


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    user_id: str = Field(foreign_key="users.id", ondelete="CASCADE", index=True)
    action_user_id: str = Field(
        foreign_key="users.id", ondelete="CASCADE", index=True
    )
    type: str = Field(max_length=20, index=True)
    title: str = Field(default="", max_length=255)
    message: str = Field(default="", max_length=1000)
    photo_id: Optional[str] = Field(
        default=None, foreign_key="photos.id", ondelete="CASCADE", index=True
    )
    comment_id: Optional[str] = Field(
        default=None, foreign_key="comments.id", ondelete="SET NULL", index=True
    )
    is_read: bool = Field(default=False, index=True)
    created_at: datetime = timestamp_field(index=True)
    updated_at: datetime = timestamp_field()
