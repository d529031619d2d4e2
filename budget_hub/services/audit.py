"""
Admin activity log.
Append-only record of mutations performed through the admin endpoints.
"""
import uuid
from typing import Any, Dict, Iterable, Optional

from sqlalchemy.orm import Session

from ..models.models import AdminActivityLog


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def log_admin_activity(
    db: Session,
    admin_id: Optional[uuid.UUID],
    action: str,
    target_table: Optional[str] = None,
    target_id: Optional[Any] = None,
    details: Optional[Dict] = None,
    commit: bool = True,
) -> AdminActivityLog:
    """
    Append an activity entry.

    Args:
        db: Database session
        admin_id: User performing the action
        action: Action name (CREATE_USER|UPDATE_USER|DELETE_USER|APPROVE_EXPENSE|...)
        target_table: Table of the affected row
        target_id: Id of the affected row
        details: JSON details (diffs, amounts, names)
        commit: Commit immediately; pass False to join the caller's transaction
    """
    entry = AdminActivityLog(
        admin_id=admin_id,
        action=action,
        target_table=target_table,
        target_id=str(target_id) if target_id is not None else None,
        details=_jsonable(details) if details is not None else None,
    )
    db.add(entry)
    if commit:
        db.commit()
        db.refresh(entry)
    return entry


def snapshot(row: Any, fields: Iterable[str]) -> Dict[str, Any]:
    """Audit-ready copy of ``fields`` on an ORM row."""
    return {name: _jsonable(getattr(row, name)) for name in fields}


def compute_diff(before: Dict, after: Dict) -> Dict:
    """
    Field-by-field change between two snapshots.

    Returns:
        ``{field: {"before": ..., "after": ...}}`` for changed fields, in field order
    """
    return {
        key: {"before": before.get(key), "after": after.get(key)}
        for key in list(before) + [k for k in after if k not in before]
        if before.get(key) != after.get(key)
    }
