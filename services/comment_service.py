"""
Comment Service.

Comments and replies live in one table: a row with `parent_id` set is a
reply, and replies only ever attach to top-level comments (a reply to a
reply is rejected). Every comment and reply counts toward the photo's
`comment_count`.

Notification routing:
- A comment notifies the photo's owner (`comment`, scoped by photo).
- A reply notifies the parent comment's author (`reply`, scoped by photo and
  the reply's own id), not the photo's owner.

Deleting a top-level comment removes its replies with it and moves the
counter by the total number of rows removed in one adjustment. Notification
rows are retracted before the comment rows are deleted, since deleting a
comment nulls the `comment_id` of notifications that point at it.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from core.database import atomic
from core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from core.logging_config import log_function_call
from core.models import Comment, NotificationType, Photo, User
from core.validation import InputValidator
from services.counters import adjust_comment_count
from services.notification_service import NotificationService
from services.user_service import UserService, user_summary

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 50


def _preview(text: str) -> str:
    if len(text) <= PREVIEW_LENGTH:
        return text
    return text[:PREVIEW_LENGTH].rstrip() + "..."


def comment_dict(
    comment: Comment, author: Optional[User], replies: Optional[List[Dict]] = None
) -> Dict[str, Any]:
    data = {
        "id": comment.id,
        "text": comment.content,
        "created_at": comment.created_at,
        "photo_id": comment.photo_id,
        "parent_id": comment.parent_id,
        "user": user_summary(author),
    }
    if replies is not None:
        data["replies"] = replies
    return data


class CommentService:
    """Comment and reply lifecycle"""

    def __init__(self, users: UserService, notifications: NotificationService):
        self.users = users
        self.notifications = notifications

    async def _get_photo(self, session: AsyncSession, photo_id: str) -> Photo:
        photo = await session.get(Photo, photo_id)
        if photo is None:
            raise NotFoundError("Photo", photo_id)
        return photo

    async def _get_comment(
        self, session: AsyncSession, comment_id: str, entity: str = "Comment"
    ) -> Comment:
        comment = await session.get(Comment, comment_id)
        if comment is None:
            raise NotFoundError(entity, comment_id)
        return comment

    @log_function_call(logger)
    async def create_comment(
        self,
        session: AsyncSession,
        actor_id: str,
        photo_id: str,
        text: Any,
        parent_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Add a top-level comment; with `parent_id` this is a reply instead"""
        text = InputValidator.clean_text("text", text)

        if parent_id:
            parent = await self._get_comment(session, parent_id)
            if parent.photo_id != photo_id:
                raise ValidationError(
                    "parentId", "Parent comment belongs to a different photo", parent_id
                )
            return await self.create_reply(session, actor_id, parent_id, text)

        async with atomic(session):
            actor = await self.users.ensure_user(session, actor_id)
            photo = await self._get_photo(session, photo_id)

            comment = Comment(content=text, user_id=actor_id, photo_id=photo_id)
            session.add(comment)
            await session.flush()

            await adjust_comment_count(session, photo_id, 1)
            await self.notifications.notify(
                session,
                recipient_id=photo.user_id,
                actor_id=actor_id,
                type=NotificationType.COMMENT,
                message=f'{actor.display_name} commented: "{_preview(text)}"',
                photo_id=photo_id,
                comment_id=comment.id,
            )

        logger.info(f"Comment {comment.id} added to photo {photo_id} by {actor_id}")
        return comment_dict(comment, actor, replies=[])

    @log_function_call(logger)
    async def create_reply(
        self, session: AsyncSession, actor_id: str, comment_id: str, text: Any
    ) -> Dict[str, Any]:
        """Reply to a top-level comment"""
        text = InputValidator.clean_text("text", text)

        async with atomic(session):
            actor = await self.users.ensure_user(session, actor_id)
            parent = await self._get_comment(session, comment_id)
            if parent.parent_id is not None:
                raise ValidationError(
                    "commentId", "Replies can only be added to top-level comments", comment_id
                )

            reply = Comment(
                content=text,
                user_id=actor_id,
                photo_id=parent.photo_id,
                parent_id=parent.id,
            )
            session.add(reply)
            await session.flush()

            await adjust_comment_count(session, parent.photo_id, 1)
            await self.notifications.notify(
                session,
                recipient_id=parent.user_id,
                actor_id=actor_id,
                type=NotificationType.REPLY,
                message=f'{actor.display_name} replied to your comment: "{_preview(text)}"',
                photo_id=parent.photo_id,
                comment_id=reply.id,
            )

        logger.info(f"Reply {reply.id} added to comment {comment_id} by {actor_id}")
        return comment_dict(reply, actor)

    @log_function_call(logger)
    async def delete_comment(
        self, session: AsyncSession, actor_id: str, comment_id: str
    ) -> Dict[str, Any]:
        """
        Delete a top-level comment and its replies.

        Allowed to the comment's author and the photo's owner. A reply id is
        handed to `delete_reply`.
        """
        comment = await self._get_comment(session, comment_id)
        if comment.parent_id is not None:
            return await self.delete_reply(session, actor_id, comment_id)

        async with atomic(session):
            photo = await self._get_photo(session, comment.photo_id)
            if actor_id not in (comment.user_id, photo.user_id):
                raise PermissionDeniedError(
                    "Only the comment author or photo owner can delete this comment",
                    resource="comment",
                )

            replies = (
                await session.execute(select(Comment).where(Comment.parent_id == comment.id))
            ).scalars().all()

            await self.notifications.retract(
                session,
                actor_id=comment.user_id,
                type=NotificationType.COMMENT,
                photo_id=photo.id,
            )
            for reply in replies:
                await self.notifications.retract(
                    session,
                    actor_id=reply.user_id,
                    type=NotificationType.REPLY,
                    comment_id=reply.id,
                )

            await session.execute(
                delete(Comment)
                .where(Comment.parent_id == comment.id)
                .execution_options(synchronize_session="fetch")
            )
            await session.execute(
                delete(Comment)
                .where(Comment.id == comment.id)
                .execution_options(synchronize_session="fetch")
            )
            deleted = 1 + len(replies)
            comment_count = await adjust_comment_count(session, photo.id, -deleted)

        logger.info(
            f"Comment {comment_id} deleted by {actor_id} with {len(replies)} repl(ies)"
        )
        return {
            "message": "Comment deleted",
            "deleted_count": deleted,
            "comment_count": comment_count,
        }

    @log_function_call(logger)
    async def delete_reply(
        self, session: AsyncSession, actor_id: str, reply_id: str
    ) -> Dict[str, Any]:
        """Delete a reply; allowed to its author, the photo owner and the parent comment's author"""
        async with atomic(session):
            reply = await self._get_comment(session, reply_id, entity="Reply")
            if reply.parent_id is None:
                raise ValidationError("replyId", "Comment is not a reply", reply_id)

            photo = await self._get_photo(session, reply.photo_id)
            parent = await session.get(Comment, reply.parent_id)
            allowed = {reply.user_id, photo.user_id}
            if parent is not None:
                allowed.add(parent.user_id)
            if actor_id not in allowed:
                raise PermissionDeniedError(
                    "Not allowed to delete this reply", resource="reply"
                )

            await self.notifications.retract(
                session,
                actor_id=reply.user_id,
                type=NotificationType.REPLY,
                comment_id=reply.id,
            )
            await session.execute(
                delete(Comment)
                .where(Comment.id == reply.id)
                .execution_options(synchronize_session="fetch")
            )
            comment_count = await adjust_comment_count(session, photo.id, -1)

        logger.info(f"Reply {reply_id} deleted by {actor_id}")
        return {"message": "Reply deleted", "deleted_count": 1, "comment_count": comment_count}

    async def list_comments(
        self, session: AsyncSession, photo_id: str
    ) -> List[Dict[str, Any]]:
        """Top-level comments newest first, each with its replies oldest first"""
        await self._get_photo(session, photo_id)
        threads = await comment_threads(session, [photo_id])
        return threads.get(photo_id, [])


async def comment_threads(
    session: AsyncSession, photo_ids: Iterable[str]
) -> Dict[str, List[Dict[str, Any]]]:
    """Comment threads of several photos, keyed by photo id"""
    photo_ids = list(photo_ids)
    if not photo_ids:
        return {}

    rows = (
        await session.execute(
            select(Comment, User)
            .join(User, User.id == Comment.user_id, isouter=True)
            .where(Comment.photo_id.in_(photo_ids))
            .order_by(Comment.created_at, Comment.id)
        )
    ).all()

    replies_by_parent: Dict[str, List[Dict[str, Any]]] = {}
    top_level = []
    for comment, author in rows:
        if comment.parent_id is None:
            top_level.append((comment, author))
        else:
            replies_by_parent.setdefault(comment.parent_id, []).append(
                comment_dict(comment, author)
            )

    threads: Dict[str, List[Dict[str, Any]]] = {}
    for comment, author in reversed(top_level):
        threads.setdefault(comment.photo_id, []).append(
            comment_dict(comment, author, replies_by_parent.get(comment.id, []))
        )
    return threads
