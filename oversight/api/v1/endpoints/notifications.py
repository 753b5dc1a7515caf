from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response
from sqlmodel.ext.asyncio.session import AsyncSession

from oversight.api import deps
from oversight.core.errors import NotFoundError
from oversight.models.notification import (
    BatchResult,
    EnrichedNotification,
    NotificationCreate,
    NotificationIds,
    NotificationType,
)
from oversight.models.user import User
from oversight.services.export_service import export_filename
from oversight.services.notification_triage import NotificationTriage
from oversight.services.triage import DateWindow, SortDirection

router = APIRouter()

@router.get("/", response_model=List[EnrichedNotification])
async def read_notifications(
    session: AsyncSession = Depends(deps.get_session),
    current_user: User = Depends(deps.get_current_active_admin),
    search: str = "",
    status: str = "all",
    date_window: DateWindow = DateWindow.ALL,
    sort_field: str = "created_at",
    sort_direction: SortDirection = SortDirection.DESC,
    notification_type: Optional[NotificationType] = None,
    limit: Optional[int] = Query(default=None, ge=1),
):
    """
    Notifications with derived priority, filtered and sorted for triage.
    The type and date window are filtered in the database.
    """
    scope = {"notification_type": notification_type.value} if notification_type else None
    triage = NotificationTriage(session, current_user, scope=scope, fetch_limit=limit)
    triage.configure(
        search=search,
        status=status,
        date_window=date_window,
        sort_field=sort_field,
        sort_direction=sort_direction,
    )
    await triage.fetch()
    return triage.visible

@router.post("/", response_model=EnrichedNotification)
async def create_notification(
    *,
    session: AsyncSession = Depends(deps.get_session),
    notification_in: NotificationCreate,
    current_user: User = Depends(deps.get_current_active_superuser),
):
    """
    Send a system-wide, role-targeted or user-targeted notification.
    """
    triage = NotificationTriage(session, current_user)
    return await triage.create(notification_in)

@router.post("/batch/read", response_model=BatchResult)
async def batch_mark_read(
    *,
    session: AsyncSession = Depends(deps.get_session),
    batch_in: NotificationIds,
    current_user: User = Depends(deps.get_current_active_admin),
):
    triage = NotificationTriage(session, current_user)
    ids = await triage.batch_mark_read(batch_in.ids)
    return BatchResult(action="batch_mark_read", count=len(ids), ids=ids)

@router.post("/batch/delete", response_model=BatchResult)
async def batch_delete(
    *,
    session: AsyncSession = Depends(deps.get_session),
    batch_in: NotificationIds,
    current_user: User = Depends(deps.get_current_active_admin),
):
    triage = NotificationTriage(session, current_user)
    ids = await triage.batch_delete(batch_in.ids)
    return BatchResult(action="batch_delete", count=len(ids), ids=ids)

@router.post("/export")
async def export_notifications(
    *,
    session: AsyncSession = Depends(deps.get_session),
    batch_in: Optional[NotificationIds] = None,
    current_user: User = Depends(deps.get_current_active_admin),
):
    """
    Download the given notifications (or all of them) as JSON.
    """
    triage = NotificationTriage(session, current_user)
    await triage.fetch()
    content = await triage.export_json(batch_in.ids if batch_in else None)
    filename = export_filename("system-notifications", "json")
    return Response(
        content=content,
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

@router.get("/{id}", response_model=EnrichedNotification)
async def read_notification(
    id: int,
    session: AsyncSession = Depends(deps.get_session),
    current_user: User = Depends(deps.get_current_active_admin),
):
    """
    Get one notification without changing its read state.
    """
    triage = NotificationTriage(session, current_user)
    await triage.fetch()
    notification = triage.get(id)
    if notification is None:
        raise NotFoundError(f"Notification {id} not found")
    return notification

@router.post("/{id}/open", response_model=EnrichedNotification)
async def open_notification(
    id: int,
    session: AsyncSession = Depends(deps.get_session),
    current_user: User = Depends(deps.get_current_active_admin),
):
    """
    Open a notification for detail view. Opening an unread notification marks it read.
    """
    triage = NotificationTriage(session, current_user)
    await triage.fetch()
    return await triage.open_detail(id)

@router.patch("/{id}/read", response_model=EnrichedNotification)
async def mark_notification_read(
    id: int,
    session: AsyncSession = Depends(deps.get_session),
    current_user: User = Depends(deps.get_current_active_admin),
):
    """
    Mark a notification as read.
    """
    triage = NotificationTriage(session, current_user)
    await triage.fetch()
    await triage.mark_read(id)
    notification = triage.get(id)
    if notification is None:
        # Marking is idempotent, but there is nothing to return
        raise NotFoundError(f"Notification {id} not found")
    return notification

@router.delete("/{id}", response_model=dict)
async def delete_notification(
    id: int,
    session: AsyncSession = Depends(deps.get_session),
    current_user: User = Depends(deps.get_current_active_admin),
):
    triage = NotificationTriage(session, current_user)
    await triage.delete(id)
    return {"msg": "Notification deleted"}
