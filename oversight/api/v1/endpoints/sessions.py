from typing import List, Optional
from fastapi import APIRouter, Depends
from sqlmodel.ext.asyncio.session import AsyncSession

from oversight.api import deps
from oversight.models.user import User
from oversight.models.user_session import SessionStats, SessionView, TerminateResult
from oversight.services.session_monitor import SessionMonitor
from oversight.services.triage import DateWindow, SortDirection

router = APIRouter()

@router.get("/", response_model=List[SessionView])
async def read_sessions(
    session: AsyncSession = Depends(deps.get_session),
    current_user: User = Depends(deps.get_current_active_admin),
    search: str = "",
    status: str = "all",
    date_window: DateWindow = DateWindow.ALL,
    sort_field: str = "last_activity",
    sort_direction: SortDirection = SortDirection.DESC,
    user_id: Optional[int] = None,
):
    """
    User sessions with their derived status (Active, Idle, Expired, Terminated).
    """
    scope = {"user_id": user_id} if user_id is not None else None
    monitor = SessionMonitor(session, current_user, scope=scope)
    monitor.configure(
        search=search,
        status=status,
        date_window=date_window,
        sort_field=sort_field,
        sort_direction=sort_direction,
    )
    await monitor.fetch()
    return monitor.visible

@router.get("/stats", response_model=SessionStats)
async def read_session_stats(
    session: AsyncSession = Depends(deps.get_session),
    current_user: User = Depends(deps.get_current_active_admin),
):
    monitor = SessionMonitor(session, current_user)
    await monitor.fetch()
    return monitor.stats()

@router.post("/terminate-all", response_model=TerminateResult)
async def terminate_all_sessions(
    session: AsyncSession = Depends(deps.get_session),
    current_user: User = Depends(deps.get_current_active_superuser),
):
    """
    Log out every user by terminating all active sessions.
    """
    monitor = SessionMonitor(session, current_user)
    count = await monitor.terminate_all()
    return TerminateResult(terminated_count=count)

@router.post("/{session_id}/terminate", response_model=SessionView)
async def terminate_session(
    session_id: int,
    session: AsyncSession = Depends(deps.get_session),
    current_user: User = Depends(deps.get_current_active_admin),
):
    monitor = SessionMonitor(session, current_user)
    await monitor.fetch()
    await monitor.terminate(session_id)
    return monitor.get(session_id)
