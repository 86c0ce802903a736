"""
Permission Service - role-keyed, DB-driven RBAC with cache.

A permission is a ``(resource, action)`` pair granted to a role through
``role_permissions``.  Evaluation is deny-by-default:
  - unknown or inactive roles hold nothing
  - ``super_admin`` holds every permission without any grant rows
  - otherwise a permission is held only if a grant row exists

Grants per role are cached for CACHE_TTL seconds; call
``invalidate_cache(role)`` / ``invalidate_all_cache()`` after changing them.
"""

import logging
import threading
import time
from typing import Iterable, Optional

from baaseteen.models import db
from baaseteen.models.auth import Role, RolePermission, User

logger = logging.getLogger(__name__)

CACHE_TTL = 300  # 5 minutes

# Cache key: role name
_permission_cache: dict[str, tuple[float, frozenset[tuple[str, str]]]] = {}
_cache_lock = threading.Lock()

SUPERUSER_ROLES = {"super_admin"}


def _get_cached(role: str) -> Optional[frozenset[tuple[str, str]]]:
    with _cache_lock:
        entry = _permission_cache.get(role)
        if entry is None:
            return None
        cached_at, perms = entry
        if time.time() - cached_at > CACHE_TTL:
            del _permission_cache[role]
            return None
        return perms


def _set_cached(role: str, perms: frozenset[tuple[str, str]]) -> None:
    with _cache_lock:
        _permission_cache[role] = (time.time(), perms)


def invalidate_cache(role: str) -> None:
    with _cache_lock:
        _permission_cache.pop(role, None)


def invalidate_all_cache() -> None:
    with _cache_lock:
        _permission_cache.clear()


def get_role_permissions(role: str | None) -> frozenset[tuple[str, str]]:
    """All ``(resource, action)`` grants of *role*; empty when unknown or inactive."""
    if not role:
        return frozenset()
    cached = _get_cached(role)
    if cached is not None:
        return cached

    rows = (
        db.session.query(RolePermission.resource, RolePermission.action)
        .join(Role, Role.id == RolePermission.role_id)
        .filter(Role.name == role, Role.is_active.is_(True))
        .all()
    )
    perms = frozenset((r[0], r[1]) for r in rows)
    _set_cached(role, perms)
    return perms


def has_permission(role: str | None, resource: str, action: str) -> bool:
    if role in SUPERUSER_ROLES:
        return True
    return (resource, action) in get_role_permissions(role)


def has_any_permission(role: str | None, pairs: Iterable[tuple[str, str]]) -> bool:
    if role in SUPERUSER_ROLES:
        return True
    return bool(get_role_permissions(role) & set(pairs))


def roles_with_permission(resource: str, action: str) -> list[str]:
    """Names of active roles holding ``resource.action`` (superusers included)."""
    rows = (
        db.session.query(Role.name)
        .join(RolePermission, RolePermission.role_id == Role.id)
        .filter(
            Role.is_active.is_(True),
            RolePermission.resource == resource,
            RolePermission.action == action,
        )
        .distinct()
        .all()
    )
    return sorted({r[0] for r in rows} | SUPERUSER_ROLES)


def user_has_permission(user: User | None, resource: str, action: str) -> bool:
    """Deny for missing or deactivated users, otherwise check their role."""
    if user is None or not user.is_active:
        return False
    allowed = has_permission(user.role, resource, action)
    if not allowed:
        logger.info(
            "Permission denied: user=%s role=%s needs %s.%s",
            user.id, user.role, resource, action,
            extra={"event_type": "permission_denied"},
        )
    return allowed
