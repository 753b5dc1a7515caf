import logging
from datetime import datetime
from typing import Iterable, List, Optional

from oversight.core.clock import to_naive_utc
from oversight.core.errors import NotFoundError, ValidationError
from oversight.models.notification import (
    EnrichedNotification,
    NotificationCreate,
    Priority,
    RoleTarget,
    SystemNotification,
    UserTarget,
)
from oversight.models.user import User
from oversight.services import export_service
from oversight.services.status_engine import PRIORITY_RANK, enrich_notification
from oversight.services.store import SqlModelStore
from oversight.services.triage import TriageCollection

logger = logging.getLogger(__name__)


class NotificationTriage(TriageCollection):
    """
    Triage view over system notifications: read state, deletion, detail view.
    """

    model = SystemNotification
    target_type = "system_notifications"
    ids_detail_key = "notification_ids"
    date_field = "created_at"
    search_fields = ("title", "message", "component")
    status_filters = {
        "unread": lambda n: not n.is_read,
        "read": lambda n: n.is_read,
        "inquiries": lambda n: n.is_inquiry,
        "system": lambda n: not n.is_inquiry,
        "critical": lambda n: n.priority == Priority.CRITICAL,
    }
    sort_keys = {
        "created_at": lambda n: n.created_at,
        # Negated so that "desc" puts the most severe first
        "priority": lambda n: -PRIORITY_RANK[n.priority],
        "type": lambda n: n.notification_type,
    }
    default_sort_field = "created_at"

    def __init__(self, session, actor, *, users: SqlModelStore = None, **kwargs):
        super().__init__(session, actor, **kwargs)
        self.users = users or SqlModelStore(session, User)

    def enrich(self, record, now: datetime) -> EnrichedNotification:
        derived = enrich_notification(record, now)
        return EnrichedNotification(
            id=record.id,
            title=record.title,
            message=record.message,
            notification_type=record.notification_type,
            is_read=record.is_read,
            created_at=record.created_at,
            expires_at=record.expires_at,
            created_by=record.created_by,
            target=record.target,
            priority=derived.priority,
            component=derived.component,
            action_items=derived.action_items,
        )

    def rederive(self, item: EnrichedNotification, now: datetime) -> EnrichedNotification:
        derived = enrich_notification(item, now)
        return item.model_copy(update=derived._asdict())

    # --- read state ---

    async def mark_read(self, id: int) -> bool:
        """
        Mark one notification read. Returns False when there was nothing to do.
        """
        item = self.get(id)
        if item is not None and item.is_read:
            return False

        actor_id = self._require_actor()
        record = await self.store.get(id)
        if record is None:
            # Already gone; nothing left to mark
            return False
        if record.is_read:
            if item is not None:
                self._patch_local([id], {"is_read": True})
            return False

        title = record.title

        async def work():
            await self.store.update(id, {"is_read": True})
            await self.audit.record(
                actor_id, "mark_read", "system_notification", id, {"notification_title": title}
            )

        await self._in_transaction(work)
        self._patch_local([id], {"is_read": True})
        return True

    async def batch_mark_read(self, ids: Optional[Iterable[int]] = None) -> List[int]:
        return await self.batch_update(ids, {"is_read": True}, "batch_mark_read")

    # --- detail view ---

    @property
    def open_notification(self) -> Optional[EnrichedNotification]:
        if self.selection.open_id is None:
            return None
        return self.get(self.selection.open_id)

    async def open_detail(self, id: int) -> EnrichedNotification:
        item = self.get(id)
        if item is None:
            raise NotFoundError(f"Notification {id} not found")
        self.selection.open_id = id
        # Viewing an unread notification reads it
        if not item.is_read:
            await self.mark_read(id)
        return self.get(id)

    def close_detail(self) -> None:
        self.selection.open_id = None

    # --- create / delete ---

    async def create(self, payload: NotificationCreate) -> EnrichedNotification:
        actor_id = self._require_actor()
        target = payload.target
        if isinstance(target, UserTarget) and await self.users.get(target.user_id) is None:
            raise ValidationError(f"Target user {target.user_id} does not exist")

        now = self.clock()
        record = SystemNotification(
            title=payload.title,
            message=payload.message,
            notification_type=payload.notification_type.value,
            expires_at=to_naive_utc(payload.expires_at),
            created_by=actor_id,
            created_at=now,
        )
        record.apply_target(target)

        async def work():
            notification_id = await self.store.insert(record)
            await self.audit.record(
                actor_id,
                "create",
                "system_notification",
                notification_id,
                {
                    "notification_title": record.title,
                    "notification_type": record.notification_type,
                    "target_type": target.kind,
                    "target_role": target.role.value if isinstance(target, RoleTarget) else None,
                    "is_system_wide": record.is_system_wide,
                },
            )

        await self._in_transaction(work)
        item = self.enrich(record, now)
        self._records.insert(0, item)
        self._refresh_view()
        logger.info("Notification %s created by admin %s (%s)", item.id, actor_id, item.priority.value)
        return item

    async def delete(self, id: int) -> None:
        actor_id = self._require_actor()
        record = await self.store.get(id)
        if record is None:
            raise NotFoundError(f"Notification {id} not found")
        snapshot = self.enrich(record, self.clock())

        async def work():
            affected = await self.store.delete([id])
            self._check_affected(affected, [id])
            await self.audit.record(
                actor_id,
                "delete",
                "system_notification",
                id,
                {
                    "notification_title": snapshot.title,
                    "notification_type": snapshot.notification_type,
                    "priority": snapshot.priority.value,
                },
            )

        await self._in_transaction(work)
        self.selection.selected.discard(id)
        self._remove_local([id])

    # --- export ---

    async def export_json(self, ids: Optional[Iterable[int]] = None) -> str:
        items = await self.export(ids, export_type="json")
        return export_service.notifications_to_json(items)
