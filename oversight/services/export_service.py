import csv
import io
import json
from datetime import datetime
from typing import Iterable

from oversight.core.clock import utcnow
from oversight.models.audit_log import AdminActivityLogRead
from oversight.models.notification import EnrichedNotification

AUDIT_CSV_HEADER = ["Timestamp", "Admin", "Role", "Action", "Target Type", "Details"]


def audit_logs_to_csv(logs: Iterable[AdminActivityLogRead]) -> str:
    """
    Render activity logs as CSV. Details are written as a JSON blob; the csv
    module quotes the field and doubles any embedded quotes.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(AUDIT_CSV_HEADER)
    for log in logs:
        writer.writerow([
            log.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            log.admin_name or "Unknown",
            log.admin_role or "Unknown",
            log.action,
            log.target_type,
            json.dumps(log.details),
        ])
    return buffer.getvalue()


def notifications_to_json(items: Iterable[EnrichedNotification]) -> str:
    return json.dumps([item.model_dump(mode="json") for item in items], indent=2)


def export_filename(prefix: str, extension: str, now: datetime = None) -> str:
    return f"{prefix}-{(now or utcnow()).strftime('%Y-%m-%d')}.{extension}"
