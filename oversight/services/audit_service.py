import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload
from sqlmodel import select, col
from sqlmodel.ext.asyncio.session import AsyncSession

from oversight.core.clock import utcnow
from oversight.core.config import settings
from oversight.core.errors import StoreError, ValidationError
from oversight.models.audit_log import AdminActivityLog, AdminActivityLogRead
from oversight.models.user import User

logger = logging.getLogger(__name__)


class AuditLogWriter:
    """
    Appends activity log entries to the caller's unit of work.

    Entries are flushed straight away so a failing audit write aborts the
    action it belongs to; the caller commits both together.
    """

    def __init__(self, session: AsyncSession, clock=utcnow):
        self.session = session
        self.clock = clock

    async def record(
        self,
        actor_id: Optional[int],
        verb: str,
        target_type: str,
        target_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> AdminActivityLog:
        if actor_id is None:
            raise ValidationError("An acting admin is required to record an action")

        log = AdminActivityLog(
            admin_id=actor_id,
            action=verb,
            target_type=target_type,
            target_id=target_id,
            details=details or {},
            created_at=self.clock(),
        )
        self.session.add(log)
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.warning("Audit write failed for action=%s target=%s: %s", verb, target_type, e)
            raise StoreError("Could not record the activity log entry") from e

        logger.info("Audit: admin=%s action=%s target=%s/%s", actor_id, verb, target_type, target_id)
        return log

    async def query(
        self,
        window: Optional[timedelta] = None,
        verb: Optional[str] = None,
        actor_id: Optional[int] = None,
        limit: int = None,
    ) -> List[AdminActivityLogRead]:
        """
        Entries newest-first, optionally restricted to a time window and verb.
        """
        query = select(AdminActivityLog).options(selectinload(AdminActivityLog.admin))

        if window is not None:
            query = query.where(col(AdminActivityLog.created_at) >= self.clock() - window)
        if verb:
            query = query.where(AdminActivityLog.action == verb)
        if actor_id:
            query = query.where(AdminActivityLog.admin_id == actor_id)

        query = query.order_by(
            col(AdminActivityLog.created_at).desc(), col(AdminActivityLog.id).desc()
        ).limit(limit or settings.AUDIT_QUERY_LIMIT)

        try:
            result = await self.session.exec(query)
            logs = result.all()
        except SQLAlchemyError as e:
            raise StoreError("Could not load activity logs") from e

        return [
            AdminActivityLogRead(
                id=log.id,
                action=log.action,
                target_type=log.target_type,
                target_id=log.target_id,
                details=log.details,
                created_at=log.created_at,
                admin_id=log.admin_id,
                admin_name=(log.admin.full_name or log.admin.username) if log.admin else None,
                admin_role=getattr(log.admin.role, "value", log.admin.role) if log.admin else None,
            )
            for log in logs
        ]
