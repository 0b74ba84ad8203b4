# src/callmaker/roles.py

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional


class Role(str, Enum):
    """
    User roles in the platform with hierarchical permissions.

    Hierarchy (highest to lowest):
    - SUPER_ADMIN: Platform-level admin, can access every organization
    - CORPORATE_ADMIN: Owns an organization and its subscription
    - ADMIN: Organization admin
    - SUB_ADMIN: Limited admin, permissions customizable by the corporate admin
    - AGENT: Call-center agent
    - SUBSCRIBER: Basic access to own data
    - USER: Default role for new sign-ups
    """
    SUPER_ADMIN = "SUPER_ADMIN"
    CORPORATE_ADMIN = "CORPORATE_ADMIN"
    ADMIN = "ADMIN"
    SUB_ADMIN = "SUB_ADMIN"
    AGENT = "AGENT"
    SUBSCRIBER = "SUBSCRIBER"
    USER = "USER"


# Roles accepted by admin-only routes
ADMIN_ROLES: FrozenSet[Role] = frozenset({Role.ADMIN, Role.SUPER_ADMIN, Role.CORPORATE_ADMIN})

# Role hierarchy levels
_ROLE_HIERARCHY: Dict[Role, int] = {
    Role.SUPER_ADMIN: 100,
    Role.CORPORATE_ADMIN: 80,
    Role.ADMIN: 70,
    Role.SUB_ADMIN: 50,
    Role.AGENT: 30,
    Role.SUBSCRIBER: 10,
    Role.USER: 10,
}


def parse_role(value: object) -> Optional[Role]:
    """Coerce a claim value into a Role; None for anything unknown."""
    if isinstance(value, Role):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Role(value.strip().upper())
    except ValueError:
        return None


def normalize_roles(values: Optional[Iterable[object]]) -> FrozenSet[Role]:
    """Build an allow-list from enum members or strings; unknown entries raise."""
    if not values:
        return frozenset()
    roles = set()
    for value in values:
        role = parse_role(value)
        if role is None:
            raise ValueError(f"Unknown role: {value!r}")
        roles.add(role)
    return frozenset(roles)


def get_role_level(role: Role) -> int:
    """Get the hierarchy level of a role."""
    return _ROLE_HIERARCHY[role]


def has_min_role(actual_role: Role, required_role: Role) -> bool:
    """True if actual_role has at least the privileges of required_role."""
    return _ROLE_HIERARCHY.get(actual_role, 0) >= _ROLE_HIERARCHY.get(required_role, 0)


def is_role_allowed(role: Optional[Role], allowed_roles: Optional[FrozenSet[Role]]) -> bool:
    """
    Declarative allow-list check used by the role gate.
    An empty or missing allow-list means no restriction.
    """
    if not allowed_roles:
        return True
    return role is not None and role in allowed_roles


# ---------------------------------------------------------------------
# Permission matrix
# ---------------------------------------------------------------------


class Permission(str, Enum):
    MANAGE_ALL_USERS = "manage_all_users"
    MANAGE_ALL_ORGANIZATIONS = "manage_all_organizations"
    ACCESS_ALL_DATA = "access_all_data"
    MANAGE_SUBSCRIPTIONS = "manage_subscriptions"
    MANAGE_SYSTEM_SETTINGS = "manage_system_settings"
    MANAGE_ROLES = "manage_roles"
    MANAGE_OWN_ORGANIZATION = "manage_own_organization"
    MANAGE_SUB_ADMINS = "manage_sub_admins"
    MANAGE_AGENTS = "manage_agents"
    MANAGE_CUSTOMERS = "manage_customers"
    MANAGE_CAMPAIGNS = "manage_campaigns"
    MANAGE_INTEGRATIONS = "manage_integrations"
    MANAGE_CALL_CENTER = "manage_call_center"
    MANAGE_SOCIAL = "manage_social"
    VIEW_ANALYTICS = "view_analytics"
    VIEW_ORGANIZATION_ANALYTICS = "view_organization_analytics"
    VIEW_CUSTOMERS = "view_customers"
    MANAGE_OWN_CALLS = "manage_own_calls"
    VIEW_OWN_ANALYTICS = "view_own_analytics"
    VIEW_OWN_DATA = "view_own_data"


ROLE_PERMISSIONS: Dict[Role, FrozenSet[Permission]] = {
    Role.CORPORATE_ADMIN: frozenset({
        Permission.MANAGE_OWN_ORGANIZATION,
        Permission.MANAGE_SUB_ADMINS,
        Permission.MANAGE_AGENTS,
        Permission.MANAGE_CUSTOMERS,
        Permission.VIEW_ORGANIZATION_ANALYTICS,
        Permission.MANAGE_CAMPAIGNS,
        Permission.MANAGE_INTEGRATIONS,
        Permission.MANAGE_SUBSCRIPTIONS,
        Permission.MANAGE_CALL_CENTER,
        Permission.MANAGE_SOCIAL,
    }),
    Role.ADMIN: frozenset({
        Permission.MANAGE_OWN_ORGANIZATION,
        Permission.MANAGE_AGENTS,
        Permission.MANAGE_CUSTOMERS,
        Permission.VIEW_ORGANIZATION_ANALYTICS,
        Permission.MANAGE_CAMPAIGNS,
        Permission.MANAGE_INTEGRATIONS,
        Permission.MANAGE_CALL_CENTER,
        Permission.MANAGE_SOCIAL,
    }),
    # Defaults; a corporate admin may override these per sub-admin
    Role.SUB_ADMIN: frozenset({
        Permission.MANAGE_CUSTOMERS,
        Permission.VIEW_ANALYTICS,
        Permission.MANAGE_CAMPAIGNS,
    }),
    Role.AGENT: frozenset({
        Permission.VIEW_CUSTOMERS,
        Permission.MANAGE_OWN_CALLS,
        Permission.VIEW_OWN_ANALYTICS,
    }),
    Role.SUBSCRIBER: frozenset({Permission.VIEW_OWN_DATA}),
    Role.USER: frozenset({Permission.VIEW_OWN_DATA}),
}

# Permissions a corporate admin may toggle on a sub-admin
SUB_ADMIN_ASSIGNABLE_PERMISSIONS: FrozenSet[Permission] = frozenset({
    Permission.MANAGE_AGENTS,
    Permission.MANAGE_CUSTOMERS,
    Permission.VIEW_ANALYTICS,
    Permission.MANAGE_CAMPAIGNS,
    Permission.MANAGE_INTEGRATIONS,
    Permission.MANAGE_CALL_CENTER,
    Permission.MANAGE_SOCIAL,
})


def has_permission(
    role: Role,
    permission: Permission,
    custom_permissions: Optional[Mapping[Permission, bool]] = None,
) -> bool:
    """
    Check a permission for a role.

    SUPER_ADMIN holds every permission. For SUB_ADMIN, an explicit entry in
    custom_permissions wins over the role defaults; only assignable
    permissions can be overridden.
    """
    if role == Role.SUPER_ADMIN:
        return True

    if role == Role.SUB_ADMIN and custom_permissions:
        if permission in SUB_ADMIN_ASSIGNABLE_PERMISSIONS and permission in custom_permissions:
            return bool(custom_permissions[permission])

    return permission in ROLE_PERMISSIONS.get(role, frozenset())


def get_permissions(role: Role) -> List[Permission]:
    """Sorted list of permissions a role holds by default."""
    if role == Role.SUPER_ADMIN:
        return sorted(Permission, key=lambda p: p.value)
    return sorted(ROLE_PERMISSIONS.get(role, frozenset()), key=lambda p: p.value)
