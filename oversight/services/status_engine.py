"""
Derives the triage status of raw records.

Nothing computed here is stored: notifications get a priority, component and
suggested action items from their type and wording, sessions get a status from
their timestamps. Both derivations are pure functions of the record and "now".
"""
from datetime import datetime, timedelta
from typing import List, NamedTuple, Optional, Tuple

from oversight.models.notification import NotificationType, Priority
from oversight.models.user_session import SessionStatus

INQUIRY_PREFIX = "New Inquiry:"
DEFAULT_IDLE_AFTER = timedelta(minutes=30)

# Lower rank is more severe
PRIORITY_RANK = {
    Priority.CRITICAL: 0,
    Priority.HIGH: 1,
    Priority.MEDIUM: 2,
    Priority.LOW: 3,
}

TYPE_BASELINE = {
    NotificationType.ERROR.value: Priority.CRITICAL,
    NotificationType.WARNING.value: Priority.HIGH,
    NotificationType.SUCCESS.value: Priority.LOW,
    NotificationType.INFO.value: Priority.MEDIUM,
}

CRITICAL_KEYWORDS = ("critical", "urgent", "emergency")
HIGH_KEYWORDS = ("important", "attention")

# (keywords, component, suggested action, priority floor). First match wins.
COMPONENT_RULES: Tuple[Tuple[Tuple[str, ...], str, str, Optional[Priority]], ...] = (
    (("user", "account"), "User Management", "Review user accounts", None),
    (("exam", "test"), "Examination System", "Check examination settings", None),
    (("security", "access"), "Security", "Review security logs", Priority.HIGH),
    (("database", "data"), "Database", "Check database status", None),
    (("backup", "restore"), "Backup System", "Verify backup integrity", None),
    (("inquiry", "contact"), "Contact System", "Respond to inquiry", None),
)

INQUIRY_ACTIONS = ("Review inquiry", "Respond to sender")


class NotificationEnrichment(NamedTuple):
    priority: Priority
    component: Optional[str]
    action_items: List[str]


def raise_priority(current: Priority, floor: Priority) -> Priority:
    """Return whichever of the two priorities is more severe."""
    return floor if PRIORITY_RANK[floor] < PRIORITY_RANK[current] else current


def enrich_notification(raw, now: datetime = None) -> NotificationEnrichment:
    """
    Classify a notification by type and wording.

    The type sets the baseline priority and the keyword scans may only raise
    it. A title starting with "New Inquiry:" overrides every other rule.
    ``now`` is accepted so every derivation shares one signature; no current
    rule depends on it.
    """
    if raw.title.startswith(INQUIRY_PREFIX):
        return NotificationEnrichment(Priority.HIGH, "Contact System", list(INQUIRY_ACTIONS))

    priority = TYPE_BASELINE.get(raw.notification_type, Priority.MEDIUM)
    content = f"{raw.title} {raw.message}".lower()

    if any(word in content for word in CRITICAL_KEYWORDS):
        priority = raise_priority(priority, Priority.CRITICAL)
    elif any(word in content for word in HIGH_KEYWORDS):
        priority = raise_priority(priority, Priority.HIGH)

    component = None
    action_items: List[str] = []
    for keywords, label, action, floor in COMPONENT_RULES:
        if any(word in content for word in keywords):
            component = label
            action_items.append(action)
            if floor is not None:
                priority = raise_priority(priority, floor)
            break

    return NotificationEnrichment(priority, component, action_items)


def session_status(
    raw,
    now: datetime,
    idle_after: timedelta = DEFAULT_IDLE_AFTER,
) -> SessionStatus:
    # Precedence: terminal flag, absolute expiry, inactivity window
    if not raw.is_active:
        return SessionStatus.TERMINATED
    if now > raw.expires_at:
        return SessionStatus.EXPIRED
    if now - raw.last_activity > idle_after:
        return SessionStatus.IDLE
    return SessionStatus.ACTIVE
