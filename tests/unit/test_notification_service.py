import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, patch

from sqlalchemy import update

from conftest import ALICE, BOB, CAROL, PHOTO, fetch_notifications
from core.exceptions import NotFoundError
from core.models import Comment, Like, Notification, NotificationType, utcnow


async def _notify_like(service, session, actor=BOB, recipient=ALICE, message="Bob liked your photo"):
    result = await service.notify(
        session,
        recipient_id=recipient,
        actor_id=actor,
        type=NotificationType.LIKE,
        message=message,
        photo_id=PHOTO,
    )
    await session.commit()
    return result


class TestNotify:
    """Creation, self-suppression and deduplication"""

    @pytest.mark.asyncio
    async def test_creates_unread_notification(self, session, seeded, notification_service):
        notification = await _notify_like(notification_service, session)

        assert notification is not None
        rows = await fetch_notifications(session, user_id=ALICE)
        assert len(rows) == 1
        assert rows[0].action_user_id == BOB
        assert rows[0].type == "like"
        assert rows[0].photo_id == PHOTO
        assert rows[0].is_read is False
        assert rows[0].title == "New like"

    @pytest.mark.asyncio
    async def test_self_action_is_suppressed(self, session, seeded, notification_service):
        result = await _notify_like(notification_service, session, actor=ALICE, recipient=ALICE)

        assert result is None
        assert await fetch_notifications(session) == []

    @pytest.mark.asyncio
    async def test_repeat_within_window_updates_in_place(
        self, session, seeded, notification_service
    ):
        first = await _notify_like(notification_service, session)
        await notification_service.set_read_state(session, ALICE, first.id, True)

        second = await _notify_like(
            notification_service, session, message="Bob liked your photo again"
        )

        rows = await fetch_notifications(session, user_id=ALICE)
        assert len(rows) == 1
        assert second.id == first.id
        assert rows[0].message == "Bob liked your photo again"
        assert rows[0].is_read is False
        assert rows[0].updated_at >= rows[0].created_at

    @pytest.mark.asyncio
    async def test_repeat_outside_window_creates_new_row(
        self, session, seeded, notification_service
    ):
        first = await _notify_like(notification_service, session)
        await session.execute(
            update(Notification)
            .where(Notification.id == first.id)
            .values(created_at=utcnow() - timedelta(hours=25))
        )
        await session.commit()

        await _notify_like(notification_service, session)

        assert len(await fetch_notifications(session, user_id=ALICE)) == 2

    @pytest.mark.asyncio
    async def test_window_is_configurable(self, session, seeded):
        from services.notification_service import NotificationService

        service = NotificationService(dedup_window=timedelta(minutes=5))
        first = await _notify_like(service, session)
        await session.execute(
            update(Notification)
            .where(Notification.id == first.id)
            .values(created_at=utcnow() - timedelta(minutes=10))
        )
        await session.commit()

        await _notify_like(service, session)

        assert len(await fetch_notifications(session, user_id=ALICE)) == 2

    @pytest.mark.asyncio
    async def test_different_actors_are_not_merged(self, session, seeded, notification_service):
        await _notify_like(notification_service, session, actor=BOB)
        await _notify_like(notification_service, session, actor=CAROL)

        assert len(await fetch_notifications(session, user_id=ALICE)) == 2

    @pytest.mark.asyncio
    async def test_replies_are_scoped_by_reply_id(self, session, seeded, notification_service):
        parent = Comment(id="c1", content="Nice", user_id=ALICE, photo_id=PHOTO)
        session.add(parent)
        await session.flush()
        session.add_all(
            [
                Comment(id="r1", content="Thanks", user_id=BOB, photo_id=PHOTO, parent_id="c1"),
                Comment(id="r2", content="Again", user_id=BOB, photo_id=PHOTO, parent_id="c1"),
            ]
        )
        await session.commit()

        for reply_id in ("r1", "r2", "r1"):
            await notification_service.notify(
                session,
                recipient_id=ALICE,
                actor_id=BOB,
                type=NotificationType.REPLY,
                message="Bob replied",
                photo_id=PHOTO,
                comment_id=reply_id,
            )
        await session.commit()

        rows = await fetch_notifications(session, user_id=ALICE, type="reply")
        assert sorted(r.comment_id for r in rows) == ["r1", "r2"]

    @pytest.mark.asyncio
    async def test_comment_notifications_merge_per_photo(
        self, session, seeded, notification_service
    ):
        session.add_all(
            [
                Comment(id="c1", content="One", user_id=BOB, photo_id=PHOTO),
                Comment(id="c2", content="Two", user_id=BOB, photo_id=PHOTO),
            ]
        )
        await session.commit()

        for comment_id in ("c1", "c2"):
            await notification_service.notify(
                session,
                recipient_id=ALICE,
                actor_id=BOB,
                type=NotificationType.COMMENT,
                message=f"Bob commented {comment_id}",
                photo_id=PHOTO,
                comment_id=comment_id,
            )
        await session.commit()

        rows = await fetch_notifications(session, user_id=ALICE, type="comment")
        assert len(rows) == 1
        assert rows[0].comment_id == "c2"
        assert rows[0].message == "Bob commented c2"

    @pytest.mark.asyncio
    async def test_follow_notifications_have_no_photo_scope(
        self, session, seeded, notification_service
    ):
        for _ in range(2):
            await notification_service.notify(
                session,
                recipient_id=ALICE,
                actor_id=BOB,
                type=NotificationType.FOLLOW,
                message="Bob started following you",
            )
        await session.commit()

        rows = await fetch_notifications(session, user_id=ALICE, type="follow")
        assert len(rows) == 1
        assert rows[0].photo_id is None


class TestSideEffectDiscipline:
    """Notification failures never undo or fail the primary write"""

    @pytest.mark.asyncio
    async def test_database_failure_is_rolled_back_to_savepoint(
        self, session, seeded, notification_service
    ):
        session.add(Like(user_id=BOB, photo_id=PHOTO))

        # Unknown recipient violates the foreign key inside the savepoint
        result = await notification_service.notify(
            session,
            recipient_id="user_missing",
            actor_id=BOB,
            type=NotificationType.LIKE,
            message="Bob liked your photo",
            photo_id=PHOTO,
        )
        await session.commit()

        assert result is None
        likes = (await session.execute(Like.__table__.select())).all()
        assert len(likes) == 1
        assert await fetch_notifications(session) == []

    @pytest.mark.asyncio
    async def test_unexpected_error_is_logged_and_swallowed(
        self, session, seeded, notification_service
    ):
        with patch.object(
            notification_service, "_upsert", AsyncMock(side_effect=RuntimeError("boom"))
        ), patch("services.notification_service.logger") as mock_logger:
            result = await notification_service.notify(
                session,
                recipient_id=ALICE,
                actor_id=BOB,
                type=NotificationType.LIKE,
                message="Bob liked your photo",
                photo_id=PHOTO,
            )

        assert result is None
        mock_logger.error.assert_called_once()
        assert "boom" in mock_logger.error.call_args[0][0]

    @pytest.mark.asyncio
    async def test_retract_failure_returns_none(self, session, seeded, notification_service):
        with patch.object(session, "execute", AsyncMock(side_effect=RuntimeError("db down"))):
            result = await notification_service.retract(
                session, actor_id=BOB, type=NotificationType.LIKE, photo_id=PHOTO
            )

        assert result is None


class TestRetract:
    @pytest.mark.asyncio
    async def test_removes_only_matching_actor_type_and_scope(
        self, session, seeded, notification_service
    ):
        await _notify_like(notification_service, session, actor=BOB)
        await _notify_like(notification_service, session, actor=CAROL)
        await notification_service.notify(
            session,
            recipient_id=ALICE,
            actor_id=BOB,
            type=NotificationType.FOLLOW,
            message="Bob started following you",
        )
        await session.commit()

        deleted = await notification_service.retract(
            session, actor_id=BOB, type=NotificationType.LIKE, photo_id=PHOTO
        )
        await session.commit()

        assert deleted == 1
        remaining = await fetch_notifications(session, user_id=ALICE)
        assert {(n.action_user_id, n.type) for n in remaining} == {
            (CAROL, "like"),
            (BOB, "follow"),
        }

    @pytest.mark.asyncio
    async def test_recipient_scope(self, session, seeded, notification_service):
        for recipient in (ALICE, CAROL):
            await notification_service.notify(
                session,
                recipient_id=recipient,
                actor_id=BOB,
                type=NotificationType.FOLLOW,
                message="Bob started following you",
            )
        await session.commit()

        await notification_service.retract(
            session, actor_id=BOB, type=NotificationType.FOLLOW, recipient_id=CAROL
        )
        await session.commit()

        remaining = await fetch_notifications(session, type="follow")
        assert [n.user_id for n in remaining] == [ALICE]


class TestInbox:
    @pytest.mark.asyncio
    async def test_list_for_user_paginates_with_unread_count(
        self, session, seeded, notification_service
    ):
        await _notify_like(notification_service, session, actor=BOB)
        await _notify_like(notification_service, session, actor=CAROL)

        page = await notification_service.list_for_user(session, ALICE, page=1, limit=1)

        assert len(page["notifications"]) == 1
        assert page["pagination"] == {
            "page": 1,
            "limit": 1,
            "total": 2,
            "pages": 2,
            "has_more": True,
        }
        assert page["unread_count"] == 2
        entry = page["notifications"][0]
        assert entry["actor"].id in (BOB, CAROL)
        assert entry["photo"].id == PHOTO

    @pytest.mark.asyncio
    async def test_mark_read_rejects_already_read(self, session, seeded, notification_service):
        notification = await _notify_like(notification_service, session)

        await notification_service.mark_read(session, ALICE, notification.id)
        with pytest.raises(NotFoundError):
            await notification_service.mark_read(session, ALICE, notification.id)

    @pytest.mark.asyncio
    async def test_set_read_state_requires_ownership(
        self, session, seeded, notification_service
    ):
        notification = await _notify_like(notification_service, session)

        with pytest.raises(NotFoundError):
            await notification_service.set_read_state(session, BOB, notification.id, True)

    @pytest.mark.asyncio
    async def test_mark_all_read(self, session, seeded, notification_service):
        await _notify_like(notification_service, session, actor=BOB)
        await _notify_like(notification_service, session, actor=CAROL)

        updated = await notification_service.mark_all_read(session, ALICE)

        assert updated == 2
        assert await notification_service.unread_count(session, ALICE) == 0

    @pytest.mark.asyncio
    async def test_cleanup_keeps_resolvable_notifications(
        self, session, seeded, notification_service
    ):
        await _notify_like(notification_service, session)

        counts = await notification_service.cleanup_orphaned(session)

        assert counts == {"photo_notifications": 0, "comment_notifications": 0}
        assert len(await fetch_notifications(session)) == 1
