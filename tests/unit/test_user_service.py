import pytest

from conftest import ALICE, BOB, CAROL, PHOTO, fetch_notifications, photo_counters
from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.models import Photo, User


class TestEnsureUser:
    @pytest.mark.asyncio
    async def test_existing_user_is_returned(self, session, seeded, user_service):
        user = await user_service.ensure_user(session, ALICE)

        assert user.username == "alice"

    @pytest.mark.asyncio
    async def test_placeholder_username_avoids_collisions(
        self, session, seeded, user_service
    ):
        session.add(User(id="someone_else", username="user_abcdefgh"))
        await session.commit()

        user = await user_service.ensure_user(session, "idp_abcdefgh")
        await session.commit()

        assert user.username.startswith("user_abcdefgh_")


class TestProfile:
    @pytest.mark.asyncio
    async def test_profile_defaults_for_unmirrored_user(self, session, seeded, user_service):
        profile = await user_service.get_profile(session, "user_unknown")

        assert profile["id"] == "user_unknown"
        assert profile["username"] is None
        assert profile["is_private"] is False

    @pytest.mark.asyncio
    async def test_update_creates_missing_row(self, session, seeded, user_service):
        profile = await user_service.update_profile(
            session, "user_new", username="newbie", bio="Hello", unknown_field="ignored"
        )

        assert profile["username"] == "newbie"
        assert profile["bio"] == "Hello"
        assert "unknown_field" not in profile

    @pytest.mark.asyncio
    async def test_username_taken(self, session, seeded, user_service):
        with pytest.raises(ConflictError):
            await user_service.update_profile(session, BOB, username="ALICE")

    @pytest.mark.asyncio
    async def test_invalid_username(self, session, seeded, user_service):
        with pytest.raises(ValidationError):
            await user_service.update_profile(session, BOB, username="a!")

    @pytest.mark.asyncio
    async def test_check_username(self, session, seeded, user_service):
        assert await user_service.check_username(session, "alice") is False
        assert await user_service.check_username(session, "alice", ALICE) is True
        assert await user_service.check_username(session, "zed") is True


class TestSearch:
    @pytest.mark.asyncio
    async def test_short_query_returns_nothing(self, session, seeded, user_service):
        assert await user_service.search_users(session, "a") == []

    @pytest.mark.asyncio
    async def test_case_insensitive_on_name_and_username(
        self, session, seeded, user_service
    ):
        by_name = await user_service.search_users(session, "SMITH")
        by_username = await user_service.search_users(session, "CAR")

        assert [u["id"] for u in by_name] == [ALICE]
        assert [u["id"] for u in by_username] == [CAROL]
        assert by_name[0]["photos"] == 1

    @pytest.mark.asyncio
    async def test_results_ordered_by_name_and_capped(self, session, seeded, user_service):
        session.add_all(
            [User(id=f"bulk_{i:02d}", name=f"Zed {i:02d}", username=f"zed{i:02d}") for i in range(25)]
        )
        await session.commit()

        results = await user_service.search_users(session, "zed")

        assert len(results) == 20
        names = [u["name"] for u in results]
        assert names == sorted(names)


class TestIdentityEvents:
    @pytest.mark.asyncio
    async def test_user_created_event(self, session, seeded, user_service):
        result = await user_service.handle_identity_event(
            session,
            {
                "type": "user.created",
                "data": {
                    "id": "idp_dave",
                    "username": "dave",
                    "first_name": "Dave",
                    "last_name": "Brown",
                    "email_addresses": [{"email_address": "dave@example.com"}],
                    "image_url": "https://images.example.com/dave.png",
                },
            },
        )

        assert result["handled"] is True
        user = await user_service.get_user(session, "idp_dave")
        assert user.username == "dave"
        assert user.name == "Dave Brown"
        assert user.email == "dave@example.com"

    @pytest.mark.asyncio
    async def test_event_without_id_is_rejected(self, session, seeded, user_service):
        with pytest.raises(ValidationError):
            await user_service.handle_identity_event(session, {"type": "user.created"})

    @pytest.mark.asyncio
    async def test_deleting_user_recounts_photos_they_touched(
        self, session, seeded, user_service, like_service, comment_service
    ):
        await like_service.toggle_like(session, BOB, PHOTO)
        await like_service.toggle_like(session, CAROL, PHOTO)
        comment = await comment_service.create_comment(session, BOB, PHOTO, "Nice")
        await comment_service.create_reply(session, CAROL, comment["id"], "Indeed")
        assert await photo_counters(session, PHOTO) == (2, 2)

        result = await user_service.handle_identity_event(
            session, {"type": "user.deleted", "data": {"id": BOB}}
        )

        assert result["handled"] is True
        assert result["corrected"] == 1
        # Bob's like, his comment and Carol's reply to it are gone
        assert await photo_counters(session, PHOTO) == (1, 0)
        assert await fetch_notifications(session, action_user_id=BOB) == []
        with pytest.raises(NotFoundError):
            await user_service.get_user(session, BOB)

    @pytest.mark.asyncio
    async def test_deleting_photo_owner_removes_their_photos(
        self, session, seeded, user_service
    ):
        await user_service.delete_user(session, ALICE)

        assert await session.get(Photo, PHOTO) is None

    @pytest.mark.asyncio
    async def test_delete_event_for_unknown_user(self, session, seeded, user_service):
        result = await user_service.handle_identity_event(
            session, {"type": "user.deleted", "data": {"id": "idp_ghost"}}
        )

        assert result["handled"] is False
