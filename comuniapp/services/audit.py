import json
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..models.models import AuditLog, utcnow
from .principals import Principal


def _dump(data: Any) -> Optional[str]:
    if data is None:
        return None
    return json.dumps(data, default=str, sort_keys=True)


def audit_log(
    session: Session,
    actor: Optional[Principal],
    action: str,
    target: Any,
    *,
    before: Any = None,
    after: Any = None,
) -> AuditLog:
    """
    Record ``action`` against an ORM instance inside the caller's transaction.

    The entry is flushed, not committed, so it disappears with everything else
    when the surrounding unit of work rolls back.
    """
    entry = AuditLog(
        timestamp=utcnow(),
        actor_user_id=actor.user_id if actor is not None else None,
        action=action,
        target_entity_type=type(target).__name__,
        target_entity_id=str(target.id),
        before=_dump(before),
        after=_dump(after),
    )
    session.add(entry)
    session.flush()
    return entry
