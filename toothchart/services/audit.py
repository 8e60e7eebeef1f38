from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from toothchart.models.audit_log import AuditLog
from toothchart.models.user import User


def log_event(
    db: Session,
    *,
    actor: User | None,
    action: str,
    entity_type: str,
    entity_id: Any,
    before_data: dict | None = None,
    after_data: dict | None = None,
) -> AuditLog:
    """Stage an audit row in the caller's transaction; the caller commits.

    ``actor`` is None for background jobs.
    """
    entry = AuditLog(action=action, entity_type=entity_type, entity_id=str(entity_id))
    if actor is not None:
        entry.actor_user_id = actor.id
        entry.actor_email = actor.email
    entry.before_json = before_data
    entry.after_json = after_data
    db.add(entry)
    return entry
