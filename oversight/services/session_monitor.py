import logging
from datetime import datetime, timedelta
from typing import List

from sqlalchemy.orm import selectinload

from oversight.core.config import settings
from oversight.core.errors import NotFoundError
from oversight.models.user import User, UserRole
from oversight.models.user_session import SessionStats, SessionStatus, SessionView, UserSession
from oversight.services.status_engine import session_status
from oversight.services.store import FilterSpec, SqlModelStore
from oversight.services.triage import TriageCollection

logger = logging.getLogger(__name__)


def format_duration(delta: timedelta) -> str:
    minutes = max(int(delta.total_seconds() // 60), 0)
    days, minutes = divmod(minutes, 60 * 24)
    hours, minutes = divmod(minutes, 60)
    if days:
        return f"{days}d {hours}h"
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def _status_is(status: SessionStatus):
    return lambda view: view.status == status


class SessionMonitor(TriageCollection):
    """
    Triage view over user sessions with individual and mass termination.
    """

    model = UserSession
    target_type = "user_sessions"
    ids_detail_key = "session_ids"
    date_field = "last_activity"
    search_fields = ("user_email", "user_name", "ip_address")
    status_filters = {
        "active": _status_is(SessionStatus.ACTIVE),
        "idle": _status_is(SessionStatus.IDLE),
        "expired": _status_is(SessionStatus.EXPIRED),
        "terminated": _status_is(SessionStatus.TERMINATED),
    }
    sort_keys = {
        "last_activity": lambda view: view.last_activity,
        "created_at": lambda view: view.created_at,
        "expires_at": lambda view: view.expires_at,
        "status": lambda view: view.status.value,
        "user": lambda view: (view.user_email or "").lower(),
    }
    default_sort_field = "last_activity"

    def __init__(self, session, actor, *, idle_after: timedelta = None, users: SqlModelStore = None, **kwargs):
        super().__init__(session, actor, **kwargs)
        self.idle_after = idle_after or timedelta(minutes=settings.IDLE_THRESHOLD_MINUTES)
        self.users = users or SqlModelStore(session, User)

    def filter_spec(self) -> FilterSpec:
        spec = super().filter_spec()
        spec.options = (selectinload(UserSession.user),)
        return spec

    def enrich(self, record: UserSession, now: datetime) -> SessionView:
        owner = record.user
        return SessionView(
            id=record.id,
            user_id=record.user_id,
            user_email=owner.email if owner else None,
            user_name=(owner.full_name or owner.username) if owner else None,
            user_role=getattr(owner.role, "value", owner.role) if owner else None,
            ip_address=record.ip_address,
            user_agent=record.user_agent,
            is_active=record.is_active,
            created_at=record.created_at,
            last_activity=record.last_activity,
            expires_at=record.expires_at,
            status=session_status(record, now, self.idle_after),
        )

    def rederive(self, item: SessionView, now: datetime) -> SessionView:
        return item.model_copy(update={"status": session_status(item, now, self.idle_after)})

    async def terminate(self, session_id: int) -> bool:
        """
        Deactivate one session. Returns False when it was already terminated.
        """
        actor_id = self._require_actor()
        record = await self.store.get(session_id)
        if record is None:
            raise NotFoundError(f"Session {session_id} not found")
        if not record.is_active:
            if self.get(session_id) is not None:
                self._patch_local([session_id], {"is_active": False})
            return False

        user_id = record.user_id
        owner = await self.users.get(user_id)
        elapsed = self.clock() - record.created_at

        async def work():
            await self.store.update(session_id, {"is_active": False})
            await self.audit.record(
                actor_id,
                "terminate",
                "user_session",
                session_id,
                {
                    "terminated_user": (owner.full_name or owner.username) if owner else None,
                    "user_id": user_id,
                    "session_duration_seconds": int(elapsed.total_seconds()),
                    "session_duration": format_duration(elapsed),
                },
            )

        await self._in_transaction(work)
        self._patch_local([session_id], {"is_active": False})
        logger.info("Session %s of user %s terminated by admin %s", session_id, user_id, actor_id)
        return True

    async def terminate_all(self) -> int:
        """
        Deactivate every active session and return how many were terminated.
        """
        actor_id = self._require_actor()

        async def work():
            ids = await self.store.update_where({"is_active": True}, {"is_active": False})
            if ids:
                await self.audit.record(
                    actor_id,
                    "terminate_all",
                    self.target_type,
                    None,
                    {"terminated_count": len(ids), "action": "mass_logout", self.ids_detail_key: ids},
                )
            return ids

        ids = await self._in_transaction(work)
        if ids:
            self._patch_local(ids, {"is_active": False})
        logger.info("Mass logout by admin %s terminated %s sessions", actor_id, len(ids))
        return len(ids)

    def stats(self) -> SessionStats:
        active = [view for view in self._records if view.is_active]
        admin_roles = (UserRole.ADMIN.value, UserRole.SUPER_ADMIN.value)
        return SessionStats(
            total=len(self._records),
            active=len(active),
            admin_active=len([view for view in active if view.user_role in admin_roles]),
            student_active=len([view for view in active if view.user_role == UserRole.STUDENT.value]),
        )

    @property
    def active_sessions(self) -> List[SessionView]:
        return [view for view in self._records if view.is_active]
