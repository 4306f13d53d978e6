"""
Workforce permission catalogue and role defaults.

Workers get the defaults of their membership role plus any extra grants
stored on the membership. Owners and admins are handled by the guards.
"""
from enum import Enum
from typing import Dict, FrozenSet, Iterable

from stitchcraft.database.models import WorkerRole


class Permission(str, Enum):
    """Permission keys (resource:action)."""

    ORDERS_READ = "orders:read"
    ORDERS_WRITE = "orders:write"
    ORDERS_DELETE = "orders:delete"

    TASKS_READ = "tasks:read"
    TASKS_WRITE = "tasks:write"
    TASKS_ASSIGN = "tasks:assign"

    CLIENTS_READ = "clients:read"
    CLIENTS_WRITE = "clients:write"

    INVENTORY_READ = "inventory:read"
    INVENTORY_WRITE = "inventory:write"

    # Financials (restricted)
    PAYMENTS_READ = "payments:read"
    PAYMENTS_WRITE = "payments:write"
    INVOICES_READ = "invoices:read"
    INVOICES_WRITE = "invoices:write"

    # Settings (restricted)
    SETTINGS_READ = "settings:read"
    SETTINGS_WRITE = "settings:write"
    WORKERS_MANAGE = "workers:manage"


PERMISSION_DESCRIPTIONS: Dict[Permission, str] = {
    Permission.ORDERS_READ: "View orders",
    Permission.ORDERS_WRITE: "Create/edit orders",
    Permission.ORDERS_DELETE: "Delete orders",
    Permission.TASKS_READ: "View tasks",
    Permission.TASKS_WRITE: "Create/complete tasks",
    Permission.TASKS_ASSIGN: "Assign tasks to workers",
    Permission.CLIENTS_READ: "View clients",
    Permission.CLIENTS_WRITE: "Manage clients",
    Permission.INVENTORY_READ: "View inventory",
    Permission.INVENTORY_WRITE: "Manage inventory",
    Permission.PAYMENTS_READ: "View payments",
    Permission.PAYMENTS_WRITE: "Record payments",
    Permission.INVOICES_READ: "View invoices",
    Permission.INVOICES_WRITE: "Create invoices",
    Permission.SETTINGS_READ: "View settings",
    Permission.SETTINGS_WRITE: "Manage settings",
    Permission.WORKERS_MANAGE: "Invite/manage workers",
}


ROLE_PERMISSIONS: Dict[WorkerRole, FrozenSet[Permission]] = {
    WorkerRole.MANAGER: frozenset(Permission),
    WorkerRole.SENIOR: frozenset(
        {
            Permission.ORDERS_READ,
            Permission.ORDERS_WRITE,
            Permission.TASKS_READ,
            Permission.TASKS_WRITE,
            Permission.TASKS_ASSIGN,
            Permission.CLIENTS_READ,
            Permission.CLIENTS_WRITE,
            Permission.INVENTORY_READ,
            Permission.INVENTORY_WRITE,
            Permission.PAYMENTS_READ,
            Permission.INVOICES_READ,
        }
    ),
    WorkerRole.WORKER: frozenset(
        {
            Permission.ORDERS_READ,
            Permission.TASKS_READ,
            Permission.TASKS_WRITE,
            Permission.CLIENTS_READ,
            Permission.INVENTORY_READ,
        }
    ),
    WorkerRole.APPRENTICE: frozenset(
        {
            Permission.ORDERS_READ,
            Permission.TASKS_READ,
            Permission.CLIENTS_READ,
        }
    ),
}


def effective_permissions(role: str, extra_grants: Iterable[str] = ()) -> FrozenSet[Permission]:
    """Role defaults plus explicit grants; unknown grant strings are ignored."""
    granted = set(ROLE_PERMISSIONS.get(WorkerRole(role), frozenset()))
    valid_keys = {p.value for p in Permission}
    granted.update(Permission(key) for key in extra_grants if key in valid_keys)
    return frozenset(granted)
