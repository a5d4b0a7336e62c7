"""
Request and response models for the photo-sharing API.

Clients speak camelCase JSON; the models use snake_case attributes with
camelCase aliases. Request fields are optional at the schema level so that a
missing value is reported by the service layer as a 400 naming the field.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Requests


class LikeRequest(CamelModel):
    photo_id: Optional[str] = None


class CommentCreateRequest(CamelModel):
    photo_id: Optional[str] = None
    text: Optional[str] = None
    parent_id: Optional[str] = None


class ReplyCreateRequest(CamelModel):
    comment_id: Optional[str] = None
    text: Optional[str] = None


class FollowRequest(CamelModel):
    target_user_id: Optional[str] = None
    action: Optional[str] = None


class RemoveFollowerRequest(CamelModel):
    follower_user_id: Optional[str] = None


class PhotoCreateRequest(CamelModel):
    url: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[List[str]] = None


class ProfileUpdateRequest(CamelModel):
    name: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None
    bio: Optional[str] = None
    avatar: Optional[str] = None
    location: Optional[str] = None
    is_private: Optional[bool] = None


class NotificationUpdateRequest(CamelModel):
    is_read: bool = True


class RecountRequest(CamelModel):
    photo_ids: Optional[List[str]] = None


# Responses


class UserSummary(CamelModel):
    id: str
    name: Optional[str] = None
    username: Optional[str] = None
    avatar: Optional[str] = None


class LikeResponse(CamelModel):
    success: bool = True
    liked: bool
    like_count: int
    message: str


class LikeStatusResponse(CamelModel):
    is_liked: bool


class CommentResponse(CamelModel):
    id: str
    text: str
    created_at: datetime
    photo_id: str
    parent_id: Optional[str] = None
    user: Optional[UserSummary] = None
    replies: List["CommentResponse"] = []


class CommentListResponse(CamelModel):
    comments: List[CommentResponse]
    total: int


class DeleteResponse(CamelModel):
    success: bool = True
    message: str
    deleted_count: int
    comment_count: int


class FollowResponse(CamelModel):
    success: bool = True
    is_following: bool
    message: str


class FollowStatusResponse(CamelModel):
    is_following: bool


class MessageResponse(CamelModel):
    success: bool = True
    message: str


class RelatedUser(UserSummary):
    bio: Optional[str] = None
    is_following: bool = False
    followed_at: Optional[datetime] = None


class RelatedUserPage(CamelModel):
    users: List[RelatedUser]
    total: int
    page: int
    limit: int
    pages: int
    has_more: bool


class StatsResponse(CamelModel):
    photos: int
    likes: int
    followers: int
    following: int
    is_following: bool


class SearchResult(UserSummary):
    bio: Optional[str] = None
    photos: int = 0
    followers: int = 0
    is_following: bool = False


class SearchResponse(CamelModel):
    users: List[SearchResult]


class ProfileResponse(CamelModel):
    id: str
    name: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None
    bio: Optional[str] = None
    avatar: Optional[str] = None
    location: Optional[str] = None
    is_private: bool = False


class UsernameAvailability(CamelModel):
    username: str
    available: bool


class PhotoResponse(CamelModel):
    id: str
    url: str
    title: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = []
    like_count: int
    comment_count: int
    created_at: datetime
    user_id: str
    user: Optional[UserSummary] = None
    is_liked: bool = False


class PhotoLiker(CamelModel):
    id: str
    created_at: datetime
    user: Optional[UserSummary] = None


class FeedPhoto(PhotoResponse):
    likes: List[PhotoLiker] = []
    comments: List[CommentResponse] = []


class FeedResponse(CamelModel):
    photos: List[FeedPhoto]
    page: int
    limit: int
    has_more: bool


class UserPhotosResponse(CamelModel):
    photos: List[PhotoResponse]
    total: int
    is_private: bool


class NotificationPhoto(CamelModel):
    id: str
    url: str
    title: Optional[str] = None


class NotificationComment(CamelModel):
    id: str
    text: str


class NotificationResponse(CamelModel):
    id: str
    type: str
    title: str
    message: str
    is_read: bool
    created_at: datetime
    updated_at: datetime
    actor: Optional[UserSummary] = None
    photo: Optional[NotificationPhoto] = None
    comment: Optional[NotificationComment] = None


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    pages: int
    has_more: bool


class NotificationListResponse(CamelModel):
    notifications: List[NotificationResponse]
    pagination: Pagination
    unread_count: int


class MarkAllReadResponse(CamelModel):
    success: bool = True
    updated: int


class WebhookResponse(CamelModel):
    success: bool = True
    result: Dict[str, Any]


class RecountResponse(CamelModel):
    checked: int
    corrected: int


class CleanupResponse(CamelModel):
    photo_notifications: int
    comment_notifications: int
