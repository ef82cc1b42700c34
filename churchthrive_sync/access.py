"""
Role permissions and permission-filtered navigation menus.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .exceptions import PermissionDeniedError


class Role(Enum):
    """Church roles, highest first."""

    ADMIN = "admin"
    PASTOR = "pastor"
    STAFF = "staff"
    LEADER = "leader"
    MEMBER = "member"


ROLE_LABELS: dict[Role, str] = {
    Role.ADMIN: "담임목사",
    Role.PASTOR: "교역자",
    Role.STAFF: "사무간사",
    Role.LEADER: "사역리더",
    Role.MEMBER: "교인",
}

ROLE_HIERARCHY: dict[Role, int] = {
    Role.ADMIN: 5,
    Role.PASTOR: 4,
    Role.STAFF: 3,
    Role.LEADER: 2,
    Role.MEMBER: 1,
}

# Roles that may switch between the admin and member views
ADMIN_ROLES = frozenset({Role.ADMIN, Role.PASTOR, Role.STAFF})

ALL_PERMISSIONS = frozenset({
    "members:read", "members:create", "members:update", "members:delete",
    "members:import", "members:export", "members:approve",
    "notes:read", "notes:create", "notes:update", "notes:delete", "notes:feedback",
    "announcements:read", "announcements:create", "announcements:update",
    "announcements:delete",
    "attendance:read", "attendance:check", "attendance:manage",
    "organization:read", "organization:manage",
    "cells:read", "cells:manage",
    "church:settings", "church:members:manage",
})

ROLE_PERMISSIONS: dict[Role, frozenset[str]] = {
    Role.ADMIN: ALL_PERMISSIONS,
    Role.PASTOR: frozenset({
        "members:read", "members:create", "members:update", "members:approve",
        "notes:read", "notes:create", "notes:update", "notes:delete", "notes:feedback",
        "announcements:read", "announcements:create", "announcements:update",
        "attendance:read", "attendance:check", "attendance:manage",
        "organization:read", "organization:manage",
        "cells:read", "cells:manage",
    }),
    Role.STAFF: frozenset({
        "members:read", "members:create", "members:update",
        "members:import", "members:export",
        "notes:read", "notes:create", "notes:update",
        "announcements:read", "announcements:create",
        "attendance:read", "attendance:check", "attendance:manage",
        "organization:read",
        "cells:read",
    }),
    Role.LEADER: frozenset({
        "members:read",
        "notes:read", "notes:create", "notes:update",
        "announcements:read",
        "attendance:read", "attendance:check",
        "cells:read",
    }),
    Role.MEMBER: frozenset({
        "notes:read", "notes:create", "notes:update",
        "announcements:read",
        "attendance:read",
    }),
}


def as_role(role: Role | str) -> Role:
    return role if isinstance(role, Role) else Role(role)


def is_role_at_least(current: Role | str, required: Role | str) -> bool:
    return ROLE_HIERARCHY[as_role(current)] >= ROLE_HIERARCHY[as_role(required)]


def get_permissions(role: Role | str) -> frozenset[str]:
    try:
        return ROLE_PERMISSIONS[as_role(role)]
    except ValueError:
        return frozenset()


def has_permission(role: Role | str, permission: str) -> bool:
    """Check a permission; unknown roles have none."""
    return permission in get_permissions(role)


def require_permission(role: Role | str, permission: str) -> None:
    """Raise PermissionDeniedError unless the role grants the permission."""
    if not has_permission(role, permission):
        name = role.value if isinstance(role, Role) else str(role)
        raise PermissionDeniedError(name, permission)


# =============================================================================
# Navigation menus
# =============================================================================


@dataclass(frozen=True)
class MenuItem:
    """Navigation entry. Items with children and no href are section headers."""

    label: str
    href: str | None = None
    permission: str | None = None
    children: tuple[MenuItem, ...] = field(default_factory=tuple)


def filter_menu(items: tuple[MenuItem, ...] | list[MenuItem], role: Role | str) -> list[MenuItem]:
    """Prune a menu tree to what a role may see.

    Items whose permission the role lacks are dropped, children are filtered
    recursively, and a section header left with no children is dropped.
    """
    visible: list[MenuItem] = []
    for item in items:
        if item.permission is not None and not has_permission(role, item.permission):
            continue
        if item.children:
            children = tuple(filter_menu(item.children, role))
            if not children and item.href is None:
                continue
            item = MenuItem(item.label, item.href, item.permission, children)
        visible.append(item)
    return visible


# For admin, pastor and staff
ADMIN_MENU: tuple[MenuItem, ...] = (
    MenuItem("대시보드", href="/dashboard"),
    MenuItem(
        "교인관리",
        permission="members:read",
        children=(
            MenuItem("교인 목록", href="/members"),
            MenuItem("가입 승인", href="/members/approvals", permission="members:approve"),
            MenuItem("임포트", href="/members/import", permission="members:import"),
        ),
    ),
    MenuItem(
        "말씀노트",
        permission="notes:read",
        children=(
            MenuItem("내 노트", href="/notes"),
            MenuItem("새 노트 작성", href="/notes/new", permission="notes:create"),
            MenuItem("설교 아카이브", href="/notes/sermons"),
        ),
    ),
    MenuItem(
        "교회행정",
        permission="announcements:read",
        children=(
            MenuItem("공지사항", href="/admin/announcements"),
            MenuItem("조직도", href="/admin/organizations", permission="organization:read"),
            MenuItem("구역/셀", href="/admin/cell-groups", permission="cells:read"),
            MenuItem("출석관리", href="/admin/attendance", permission="attendance:read"),
            MenuItem("직분관리", href="/admin/roles", permission="organization:manage"),
        ),
    ),
    MenuItem(
        "설정",
        children=(
            MenuItem("내 프로필", href="/settings"),
            MenuItem("교회 설정", href="/settings/church", permission="church:settings"),
            MenuItem("알림 설정", href="/settings/notifications"),
        ),
    ),
)

# For leader and member
MEMBER_MENU: tuple[MenuItem, ...] = (
    MenuItem("홈", href="/home"),
    MenuItem(
        "말씀노트",
        children=(
            MenuItem("내 노트", href="/notes"),
            MenuItem("새 노트 작성", href="/notes/new"),
            MenuItem("설교 아카이브", href="/notes/sermons"),
        ),
    ),
    MenuItem("공지사항", href="/announcements"),
    MenuItem("내 정보", href="/profile"),
)


def menu_for(role: Role | str, view_mode: str = "admin") -> list[MenuItem]:
    """Menu a role sees in the given view mode."""
    if as_role(role) in ADMIN_ROLES and view_mode == "admin":
        return filter_menu(ADMIN_MENU, role)
    return filter_menu(MEMBER_MENU, role)
