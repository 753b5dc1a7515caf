from typing import List, Optional
from fastapi import APIRouter, Depends, Response
from sqlmodel.ext.asyncio.session import AsyncSession

from oversight.api import deps
from oversight.models.audit_log import AdminActivityLogRead
from oversight.models.user import User
from oversight.services.audit_service import AuditLogWriter
from oversight.services.export_service import audit_logs_to_csv, export_filename
from oversight.services.triage import DATE_WINDOWS, DateWindow

router = APIRouter()

@router.get("/", response_model=List[AdminActivityLogRead])
async def read_audit_logs(
    session: AsyncSession = Depends(deps.get_session),
    current_user: User = Depends(deps.get_current_active_superuser),
    window: DateWindow = DateWindow.WEEK,
    action: Optional[str] = None,
    admin_id: Optional[int] = None,
    limit: int = 1000,
):
    """
    Retrieve activity logs, newest first. Accessible only by super admins.
    """
    audit = AuditLogWriter(session)
    return await audit.query(
        window=DATE_WINDOWS.get(window), verb=action, actor_id=admin_id, limit=limit
    )

@router.get("/export")
async def export_audit_logs(
    session: AsyncSession = Depends(deps.get_session),
    current_user: User = Depends(deps.get_current_active_superuser),
    window: DateWindow = DateWindow.WEEK,
    action: Optional[str] = None,
):
    """
    Download the filtered activity logs as CSV.
    """
    audit = AuditLogWriter(session)
    logs = await audit.query(window=DATE_WINDOWS.get(window), verb=action)
    filename = export_filename("activity-logs", "csv")
    return Response(
        content=audit_logs_to_csv(logs),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
