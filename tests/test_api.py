import csv
import io
import json
from datetime import timedelta

import pytest
from sqlmodel import select

from oversight.core.clock import utcnow
from oversight.models.audit_log import AdminActivityLog
from oversight.models.user_session import UserSession

from conftest import add_notification, login


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_opens_a_tracked_session(self, client, test_db, admin):
        admin_id = admin.id
        headers = await login(client, "staff")

        sessions = (await test_db.exec(select(UserSession))).all()
        assert len(sessions) == 1
        assert sessions[0].user_id == admin_id
        assert sessions[0].is_active is True

        response = await client.get("/api/v1/users/me", headers=headers)
        assert response.status_code == 200
        assert response.json()["username"] == "staff"

    @pytest.mark.asyncio
    async def test_login_by_email(self, client, admin):
        await login(client, "staff@example.com")

    @pytest.mark.asyncio
    async def test_wrong_password(self, client, admin):
        response = await client.post(
            "/api/v1/login/access-token", data={"username": "staff", "password": "not-the-password"}
        )
        assert response.status_code == 400


class TestNotifications:
    @pytest.mark.asyncio
    async def test_list_is_enriched_and_filtered(self, client, test_db, admin):
        await add_notification(test_db, "Critical database outage", "Primary unreachable", "error")
        await add_notification(test_db, "Weekly digest", "Nothing to report", "success")
        headers = await login(client, "staff")

        response = await client.get("/api/v1/notifications/", headers=headers)
        assert response.status_code == 200
        body = response.json()
        assert len(body) == 2

        response = await client.get(
            "/api/v1/notifications/", params={"status": "critical"}, headers=headers
        )
        [critical] = response.json()
        assert critical["title"] == "Critical database outage"
        assert critical["priority"] == "critical"
        assert critical["component"] == "Database"

    @pytest.mark.asyncio
    async def test_unknown_status_filter_is_rejected(self, client, admin):
        headers = await login(client, "staff")
        response = await client.get(
            "/api/v1/notifications/", params={"status": "archived"}, headers=headers
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_students_cannot_triage(self, client, student):
        headers = await login(client, "pupil")
        response = await client.get("/api/v1/notifications/", headers=headers)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_get_is_read_only_and_open_marks_read(self, client, test_db, admin):
        notification = await add_notification(test_db, "Disk usage high", "Volume at 91%", "warning")
        notification_id = notification.id
        headers = await login(client, "staff")

        for _ in range(2):
            response = await client.get(f"/api/v1/notifications/{notification_id}", headers=headers)
            assert response.status_code == 200
            assert response.json()["is_read"] is False
        assert (await test_db.exec(select(AdminActivityLog))).all() == []

        response = await client.post(f"/api/v1/notifications/{notification_id}/open", headers=headers)
        assert response.status_code == 200
        assert response.json()["is_read"] is True
        [log] = (await test_db.exec(select(AdminActivityLog))).all()
        assert log.action == "mark_read"

    @pytest.mark.asyncio
    async def test_get_unknown_is_404(self, client, admin):
        headers = await login(client, "staff")
        response = await client.get("/api/v1/notifications/999", headers=headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_type_and_limit_are_applied_in_the_query(self, client, test_db, admin):
        for minutes_ago, kind in [(3, "error"), (2, "info"), (1, "error")]:
            await add_notification(
                test_db, f"{kind} {minutes_ago}", notification_type=kind,
                created_at=utcnow() - timedelta(minutes=minutes_ago),
            )
        headers = await login(client, "staff")

        response = await client.get(
            "/api/v1/notifications/", params={"notification_type": "error"}, headers=headers
        )
        assert [n["title"] for n in response.json()] == ["error 1", "error 3"]

        response = await client.get("/api/v1/notifications/", params={"limit": 1}, headers=headers)
        assert [n["title"] for n in response.json()] == ["error 1"]

    @pytest.mark.asyncio
    async def test_batch_delete(self, client, test_db, admin):
        ids = [(await add_notification(test_db, f"Notice {i}")).id for i in range(3)]
        headers = await login(client, "staff")

        response = await client.post(
            "/api/v1/notifications/batch/delete", json={"ids": ids[:2]}, headers=headers
        )
        assert response.status_code == 200
        assert response.json()["count"] == 2

        response = await client.get("/api/v1/notifications/", headers=headers)
        assert [n["id"] for n in response.json()] == [ids[2]]

    @pytest.mark.asyncio
    async def test_batch_delete_with_stale_id_is_rejected(self, client, test_db, admin):
        notification = await add_notification(test_db, "Notice")
        notification_id = notification.id
        headers = await login(client, "staff")

        response = await client.post(
            "/api/v1/notifications/batch/delete", json={"ids": [notification_id, 999]}, headers=headers
        )
        assert response.status_code == 503

        response = await client.get("/api/v1/notifications/", headers=headers)
        assert [n["id"] for n in response.json()] == [notification_id]

    @pytest.mark.asyncio
    async def test_delete_unknown_is_404(self, client, admin):
        headers = await login(client, "staff")
        response = await client.delete("/api/v1/notifications/999", headers=headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_create_requires_super_admin(self, client, admin, super_admin):
        payload = {"title": "Exam results", "message": "Out now", "target": {"kind": "role", "role": "student"}}

        headers = await login(client, "staff")
        response = await client.post("/api/v1/notifications/", json=payload, headers=headers)
        assert response.status_code == 403

        headers = await login(client, "root")
        response = await client.post("/api/v1/notifications/", json=payload, headers=headers)
        assert response.status_code == 200
        assert response.json()["target"] == {"kind": "role", "role": "student"}

    @pytest.mark.asyncio
    async def test_export_json(self, client, test_db, admin):
        await add_notification(test_db, "Backup completed", "All volumes copied", "success")
        headers = await login(client, "staff")

        response = await client.post("/api/v1/notifications/export", headers=headers)
        assert response.status_code == 200
        assert "attachment" in response.headers["content-disposition"]
        assert [n["component"] for n in json.loads(response.text)] == ["Backup System"]


class TestSessions:
    @pytest.mark.asyncio
    async def test_terminate_all_logs_everyone_out(self, client, test_db, super_admin, admin):
        root_headers = await login(client, "root")
        staff_headers = await login(client, "staff")

        response = await client.post("/api/v1/sessions/terminate-all", headers=root_headers)
        assert response.status_code == 200
        assert response.json() == {"terminated_count": 2}

        for headers in (root_headers, staff_headers):
            response = await client.get("/api/v1/users/me", headers=headers)
            assert response.status_code == 401

        log = (await test_db.exec(select(AdminActivityLog))).one()
        assert log.action == "terminate_all"
        assert log.details["action"] == "mass_logout"

    @pytest.mark.asyncio
    async def test_terminate_all_requires_super_admin(self, client, admin):
        headers = await login(client, "staff")
        response = await client.post("/api/v1/sessions/terminate-all", headers=headers)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_terminate_one(self, client, test_db, admin, student):
        await login(client, "pupil")
        headers = await login(client, "staff")
        student_session = (
            await test_db.exec(select(UserSession).where(UserSession.user_id == student.id))
        ).one()

        response = await client.post(f"/api/v1/sessions/{student_session.id}/terminate", headers=headers)
        assert response.status_code == 200
        assert response.json()["status"] == "Terminated"

        response = await client.get("/api/v1/sessions/stats", headers=headers)
        assert response.json() == {"total": 2, "active": 1, "admin_active": 1, "student_active": 0}

    @pytest.mark.asyncio
    async def test_list_sessions(self, client, admin):
        headers = await login(client, "staff")
        response = await client.get("/api/v1/sessions/", params={"status": "active"}, headers=headers)
        assert response.status_code == 200
        [view] = response.json()
        assert view["user_email"] == "staff@example.com"
        assert view["status"] == "Active"


class TestUsersAndAudit:
    @pytest.mark.asyncio
    async def test_create_user_and_duplicate(self, client, super_admin):
        headers = await login(client, "root")
        payload = {
            "email": "new.tutor@oversight.org",
            "username": "newtutor",
            "full_name": "New Tutor",
            "password": "correct-horse",
            "role": "admin",
        }

        response = await client.post("/api/v1/users/", json=payload, headers=headers)
        assert response.status_code == 200
        assert response.json()["role"] == "admin"

        response = await client.post("/api/v1/users/", json=payload, headers=headers)
        assert response.status_code == 409
        assert response.json()["detail"] == "A user with this email already exists"

    @pytest.mark.asyncio
    async def test_audit_log_csv_export(self, client, test_db, super_admin):
        notification = await add_notification(test_db, 'Rack "B", shelf 2', "Check it")
        headers = await login(client, "root")
        await client.delete(f"/api/v1/notifications/{notification.id}", headers=headers)

        response = await client.get("/api/v1/audit-logs/", headers=headers)
        assert response.status_code == 200
        [entry] = response.json()
        assert entry["action"] == "delete"
        assert entry["admin_name"] == "Root Admin"

        response = await client.get("/api/v1/audit-logs/export", headers=headers)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        rows = list(csv.reader(io.StringIO(response.text)))
        assert rows[0] == ["Timestamp", "Admin", "Role", "Action", "Target Type", "Details"]
        assert rows[1][1:5] == ["Root Admin", "super_admin", "delete", "system_notification"]
        assert json.loads(rows[1][5])["notification_title"] == 'Rack "B", shelf 2'

    @pytest.mark.asyncio
    async def test_audit_logs_require_super_admin(self, client, admin):
        headers = await login(client, "staff")
        response = await client.get("/api/v1/audit-logs/", headers=headers)
        assert response.status_code == 403
