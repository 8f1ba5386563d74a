"""
Role permission table.

Four fixed roles, each mapped to an explicit bundle of boolean
permission keys. The bundles are written out in full rather than
derived from one another, and are identical for every tenant.
"""

from enum import Enum
from typing import Any


class Role(str, Enum):
    OWNER = "Owner"
    ADMINISTRATOR = "Administrator"
    MANAGER = "Manager"
    EMPLOYEE = "Employee"


class PermissionTableError(RuntimeError):
    """The static table is inconsistent; raised at startup."""


# Hierarchy level, used for display ordering only
ROLE_LEVELS: dict[Role, int] = {
    Role.OWNER: 4,
    Role.ADMINISTRATOR: 3,
    Role.MANAGER: 2,
    Role.EMPLOYEE: 1,
}

ROLE_DESCRIPTIONS: dict[Role, str] = {
    Role.OWNER: "Full system access with billing and subscription management",
    Role.ADMINISTRATOR: "Full operational access without billing management",
    Role.MANAGER: "Team and content management with limited admin access",
    Role.EMPLOYEE: "Basic access for day-to-day operations",
}

PERMISSION_CATEGORIES: list[dict[str, Any]] = [
    {
        "key": "users",
        "label": "User Management",
        "permissions": ["users.view", "users.create", "users.edit", "users.delete", "users.manage_roles"],
    },
    {
        "key": "shops",
        "label": "Shop Management",
        "permissions": ["shops.view", "shops.create", "shops.edit", "shops.delete"],
    },
    {
        "key": "company",
        "label": "Company",
        "permissions": ["company.view", "company.edit"],
    },
    {
        "key": "subscriptions",
        "label": "Subscriptions",
        "permissions": ["subscriptions.view", "subscriptions.manage"],
    },
    {
        "key": "emails",
        "label": "Email System",
        "permissions": ["emails.view", "emails.send", "emails.manage"],
    },
    {
        "key": "newsletters",
        "label": "Newsletters",
        "permissions": ["newsletters.view", "newsletters.create", "newsletters.send"],
    },
    {
        "key": "campaigns",
        "label": "Campaigns",
        "permissions": ["campaigns.view", "campaigns.create", "campaigns.manage"],
    },
    {
        "key": "contacts",
        "label": "Contacts",
        "permissions": ["contacts.view", "contacts.create", "contacts.edit", "contacts.delete"],
    },
    {
        "key": "forms",
        "label": "Forms",
        "permissions": ["forms.view", "forms.create", "forms.edit", "forms.delete"],
    },
    {
        "key": "promotions",
        "label": "Promotions",
        "permissions": ["promotions.view", "promotions.create", "promotions.manage"],
    },
    {
        "key": "appointments",
        "label": "Appointments",
        "permissions": ["appointments.view", "appointments.create", "appointments.edit", "appointments.delete"],
    },
    {
        "key": "analytics",
        "label": "Analytics",
        "permissions": ["analytics.view"],
    },
    {
        "key": "settings",
        "label": "Settings",
        "permissions": ["settings.view", "settings.edit"],
    },
]

PERMISSION_KEYS: frozenset[str] = frozenset(
    key for category in PERMISSION_CATEGORIES for key in category["permissions"]
)

ROLE_PERMISSIONS: dict[Role, dict[str, bool]] = {
    Role.OWNER: {
        "users.view": True,
        "users.create": True,
        "users.edit": True,
        "users.delete": True,
        "users.manage_roles": True,
        "shops.view": True,
        "shops.create": True,
        "shops.edit": True,
        "shops.delete": True,
        "company.view": True,
        "company.edit": True,
        "subscriptions.view": True,
        "subscriptions.manage": True,
        "emails.view": True,
        "emails.send": True,
        "emails.manage": True,
        "newsletters.view": True,
        "newsletters.create": True,
        "newsletters.send": True,
        "campaigns.view": True,
        "campaigns.create": True,
        "campaigns.manage": True,
        "contacts.view": True,
        "contacts.create": True,
        "contacts.edit": True,
        "contacts.delete": True,
        "forms.view": True,
        "forms.create": True,
        "forms.edit": True,
        "forms.delete": True,
        "promotions.view": True,
        "promotions.create": True,
        "promotions.manage": True,
        "appointments.view": True,
        "appointments.create": True,
        "appointments.edit": True,
        "appointments.delete": True,
        "analytics.view": True,
        "settings.view": True,
        "settings.edit": True,
    },
    Role.ADMINISTRATOR: {
        "users.view": True,
        "users.create": True,
        "users.edit": True,
        "users.delete": True,
        "users.manage_roles": True,
        "shops.view": True,
        "shops.create": True,
        "shops.edit": True,
        "shops.delete": True,
        "company.view": True,
        "company.edit": True,
        "subscriptions.view": True,
        "subscriptions.manage": False,
        "emails.view": True,
        "emails.send": True,
        "emails.manage": True,
        "newsletters.view": True,
        "newsletters.create": True,
        "newsletters.send": True,
        "campaigns.view": True,
        "campaigns.create": True,
        "campaigns.manage": True,
        "contacts.view": True,
        "contacts.create": True,
        "contacts.edit": True,
        "contacts.delete": True,
        "forms.view": True,
        "forms.create": True,
        "forms.edit": True,
        "forms.delete": True,
        "promotions.view": True,
        "promotions.create": True,
        "promotions.manage": True,
        "appointments.view": True,
        "appointments.create": True,
        "appointments.edit": True,
        "appointments.delete": True,
        "analytics.view": True,
        "settings.view": True,
        "settings.edit": False,
    },
    Role.MANAGER: {
        "users.view": True,
        "users.create": False,
        "users.edit": False,
        "users.delete": False,
        "users.manage_roles": False,
        "shops.view": True,
        "shops.create": False,
        "shops.edit": True,
        "shops.delete": False,
        "company.view": True,
        "company.edit": False,
        "subscriptions.view": False,
        "subscriptions.manage": False,
        "emails.view": True,
        "emails.send": True,
        "emails.manage": False,
        "newsletters.view": True,
        "newsletters.create": True,
        "newsletters.send": True,
        "campaigns.view": True,
        "campaigns.create": True,
        "campaigns.manage": False,
        "contacts.view": True,
        "contacts.create": True,
        "contacts.edit": True,
        "contacts.delete": False,
        "forms.view": True,
        "forms.create": True,
        "forms.edit": True,
        "forms.delete": False,
        "promotions.view": True,
        "promotions.create": True,
        "promotions.manage": False,
        "appointments.view": True,
        "appointments.create": True,
        "appointments.edit": True,
        "appointments.delete": True,
        "analytics.view": True,
        "settings.view": True,
        "settings.edit": False,
    },
    Role.EMPLOYEE: {
        "users.view": False,
        "users.create": False,
        "users.edit": False,
        "users.delete": False,
        "users.manage_roles": False,
        "shops.view": True,
        "shops.create": False,
        "shops.edit": False,
        "shops.delete": False,
        "company.view": True,
        "company.edit": False,
        "subscriptions.view": False,
        "subscriptions.manage": False,
        "emails.view": True,
        "emails.send": False,
        "emails.manage": False,
        "newsletters.view": True,
        "newsletters.create": False,
        "newsletters.send": False,
        "campaigns.view": True,
        "campaigns.create": False,
        "campaigns.manage": False,
        "contacts.view": True,
        "contacts.create": True,
        "contacts.edit": False,
        "contacts.delete": False,
        "forms.view": True,
        "forms.create": False,
        "forms.edit": False,
        "forms.delete": False,
        "promotions.view": True,
        "promotions.create": False,
        "promotions.manage": False,
        "appointments.view": True,
        "appointments.create": True,
        "appointments.edit": False,
        "appointments.delete": False,
        "analytics.view": False,
        "settings.view": False,
        "settings.edit": False,
    },
}


def parse_role(value: "Role | str | None") -> Role | None:
    """Return the Role for a stored value, or None if it is not one."""
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        return None


def role_value(role: "Role | str") -> str:
    """Stored string for a role, whether it arrives as enum or raw column value."""
    parsed = parse_role(role)
    return parsed.value if parsed is not None else str(role)


def has_permission(role: "Role | str | None", permission_key: str) -> bool:
    """
    Look up a single permission.

    Unknown roles and unknown keys are denied.
    """
    parsed = parse_role(role)
    if parsed is None:
        return False
    return ROLE_PERMISSIONS[parsed].get(permission_key, False)


def permissions_for(role: "Role | str") -> dict[str, bool]:
    """Full bundle for a role (copy)."""
    parsed = parse_role(role)
    if parsed is None:
        return {key: False for key in sorted(PERMISSION_KEYS)}
    return dict(ROLE_PERMISSIONS[parsed])


def validate_permission_table() -> None:
    """
    Check that every role defines exactly the known key set.

    Raises:
        PermissionTableError: on a missing role, missing key or extra key
    """
    missing_roles = set(Role) - set(ROLE_PERMISSIONS)
    if missing_roles:
        raise PermissionTableError(
            f"Roles without a permission bundle: {sorted(r.value for r in missing_roles)}"
        )

    for role, bundle in ROLE_PERMISSIONS.items():
        keys = set(bundle)
        missing = PERMISSION_KEYS - keys
        extra = keys - PERMISSION_KEYS
        if missing or extra:
            raise PermissionTableError(
                f"Permission bundle for {role.value} is inconsistent: "
                f"missing={sorted(missing)} extra={sorted(extra)}"
            )
        non_bool = [key for key, value in bundle.items() if not isinstance(value, bool)]
        if non_bool:
            raise PermissionTableError(
                f"Non-boolean permission values for {role.value}: {sorted(non_bool)}"
            )
