from fastapi import APIRouter
from oversight.api.v1.endpoints import login, users, notifications, sessions, audit_logs

api_router = APIRouter()
api_router.include_router(login.router, tags=["login"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
api_router.include_router(sessions.router, prefix="/sessions", tags=["sessions"])
api_router.include_router(audit_logs.router, prefix="/audit-logs", tags=["audit-logs"])
