from datetime import timedelta

import pytest
from sqlalchemy.orm import selectinload

from oversight.core.errors import NotFoundError, StoreError
from oversight.models.notification import SystemNotification
from oversight.models.user_session import UserSession
from oversight.services.store import FilterSpec, SqlModelStore

from conftest import add_notification, add_user_session


@pytest.fixture
def notifications(test_db):
    return SqlModelStore(test_db, SystemNotification)


async def _seed(db, now):
    for hours_ago, kind in [(30, "error"), (20, "info"), (10, "error"), (1, "warning")]:
        await add_notification(
            db, f"{kind}-{hours_ago}h", notification_type=kind, created_at=now - timedelta(hours=hours_ago)
        )


class TestList:
    @pytest.mark.asyncio
    async def test_default_order_is_newest_first(self, test_db, now, notifications):
        await _seed(test_db, now)
        records = await notifications.list()
        assert [r.title for r in records] == ["warning-1h", "error-10h", "info-20h", "error-30h"]

    @pytest.mark.asyncio
    async def test_equals(self, test_db, now, notifications):
        await _seed(test_db, now)
        records = await notifications.list(FilterSpec(equals={"notification_type": "error"}))
        assert [r.title for r in records] == ["error-10h", "error-30h"]

    @pytest.mark.asyncio
    async def test_since_on_date_field(self, test_db, now, notifications):
        await _seed(test_db, now)
        records = await notifications.list(FilterSpec(since=now - timedelta(hours=12)))
        assert [r.title for r in records] == ["warning-1h", "error-10h"]

    @pytest.mark.asyncio
    async def test_limit_after_ordering(self, test_db, now, notifications):
        await _seed(test_db, now)
        records = await notifications.list(FilterSpec(limit=2, descending=False))
        assert [r.title for r in records] == ["error-30h", "info-20h"]

    @pytest.mark.asyncio
    async def test_predicates_combine(self, test_db, now, notifications):
        await _seed(test_db, now)
        spec = FilterSpec(equals={"notification_type": "error"}, since=now - timedelta(hours=24), limit=5)
        assert [r.title for r in await notifications.list(spec)] == ["error-10h"]

    @pytest.mark.asyncio
    async def test_equal_timestamps_fall_back_to_id(self, test_db, now, notifications):
        first = await add_notification(test_db, "first", created_at=now)
        second = await add_notification(test_db, "second", created_at=now)
        records = await notifications.list()
        assert [r.id for r in records] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_custom_date_field_and_options(self, test_db, now, student):
        await add_user_session(test_db, student, now, idle=timedelta(hours=3))
        recent = await add_user_session(test_db, student, now, idle=timedelta(minutes=2))
        store = SqlModelStore(test_db, UserSession)

        spec = FilterSpec(
            date_field="last_activity",
            since=now - timedelta(hours=1),
            order_by="last_activity",
            options=(selectinload(UserSession.user),),
        )
        [record] = await store.list(spec)
        assert record.id == recent.id
        assert record.user.username == "pupil"

    @pytest.mark.asyncio
    async def test_unknown_field_is_rejected(self, notifications):
        with pytest.raises(StoreError):
            await notifications.list(FilterSpec(equals={"colour": "red"}))


class TestWrites:
    @pytest.mark.asyncio
    async def test_update_many_and_delete_report_affected_rows(self, test_db, now, notifications):
        await _seed(test_db, now)
        ids = [r.id for r in await notifications.list()]

        assert await notifications.update_many(ids[:2] + [999], {"is_read": True}) == 2
        assert await notifications.delete([ids[3], 999]) == 1
        await notifications.commit()

        remaining = await notifications.list()
        assert [r.is_read for r in remaining] == [True, True, False]

    @pytest.mark.asyncio
    async def test_update_where_returns_touched_ids(self, test_db, now, notifications):
        await _seed(test_db, now)
        errors = await notifications.list(FilterSpec(equals={"notification_type": "error"}))

        touched = await notifications.update_where({"notification_type": "error"}, {"is_read": True})
        await notifications.commit()

        assert sorted(touched) == sorted(r.id for r in errors)
        unread = await notifications.list(FilterSpec(equals={"is_read": False}))
        assert {r.notification_type for r in unread} == {"info", "warning"}

    @pytest.mark.asyncio
    async def test_update_unknown_record(self, notifications):
        with pytest.raises(NotFoundError):
            await notifications.update(404, {"is_read": True})
