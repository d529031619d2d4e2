"""
Reference data seeding.

Inserts the project permission catalogue and the role → permission rows
from ``services.roles``. Existing rows are left alone, so running it again
only adds what is missing.
"""
from typing import Tuple

import structlog
from sqlalchemy.orm import Session

from .models.models import ProjectPermission, RolePermission
from .services.roles import PERMISSION_DESCRIPTIONS, role_permission_pairs


log = structlog.get_logger(__name__)


def seed_role_permissions(db: Session) -> Tuple[int, int]:
    """Returns (permissions_added, role_permissions_added)."""
    existing_perms = {name for (name,) in db.query(ProjectPermission.name).all()}
    added_perms = 0
    for perm, description in PERMISSION_DESCRIPTIONS.items():
        if perm.value not in existing_perms:
            db.add(ProjectPermission(name=perm.value, description=description))
            added_perms += 1

    existing_pairs = set(db.query(RolePermission.role, RolePermission.permission_name).all())
    added_pairs = 0
    for role, perm in role_permission_pairs():
        if (role, perm) not in existing_pairs:
            db.add(RolePermission(role=role, permission_name=perm))
            added_pairs += 1

    db.commit()
    if added_perms or added_pairs:
        log.info("role_permissions_seeded", permissions=added_perms, role_permissions=added_pairs)
    return added_perms, added_pairs
