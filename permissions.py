from enum import Enum
from typing import Dict, FrozenSet, Union, assert_never


class Role(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    KITCHEN = "kitchen"
    WAITER = "waiter"


class Permission(str, Enum):
    MANAGE_MENU = "canManageMenu"
    MANAGE_ORDERS = "canManageOrders"
    MANAGE_TABLES = "canManageTables"
    MANAGE_STAFF = "canManageStaff"
    VIEW_REPORTS = "canViewReports"
    MANAGE_SETTINGS = "canManageSettings"
    UPDATE_ORDER_STATUS = "canUpdateOrderStatus"
    VERIFY_PAYMENTS = "canVerifyPayments"


def role_permissions(role: Role) -> FrozenSet[Permission]:
    """Capabilities granted to a role. Anything not listed is denied."""
    match role:
        case Role.ADMIN:
            return frozenset(Permission)
        case Role.MANAGER:
            return frozenset({
                Permission.MANAGE_MENU,
                Permission.MANAGE_ORDERS,
                Permission.MANAGE_TABLES,
                Permission.VIEW_REPORTS,
                Permission.UPDATE_ORDER_STATUS,
                Permission.VERIFY_PAYMENTS,
            })
        case Role.KITCHEN:
            return frozenset({
                Permission.MANAGE_ORDERS,
                Permission.UPDATE_ORDER_STATUS,
            })
        case Role.WAITER:
            return frozenset({
                Permission.MANAGE_ORDERS,
                Permission.MANAGE_TABLES,
                Permission.UPDATE_ORDER_STATUS,
                Permission.VERIFY_PAYMENTS,
            })
        case _:
            assert_never(role)


def has_permission(role: Union[Role, str], permission: Union[Permission, str]) -> bool:
    # Role("owner") raises ValueError: unknown roles are a programming error
    return Permission(permission) in role_permissions(Role(role))


def permission_table(role: Union[Role, str]) -> Dict[str, bool]:
    granted = role_permissions(Role(role))
    return {p.value: p in granted for p in Permission}


def role_display_name(role: Union[Role, str]) -> str:
    match Role(role):
        case Role.ADMIN:
            return "Administrator"
        case Role.MANAGER:
            return "Manager"
        case Role.KITCHEN:
            return "Kitchen Staff"
        case Role.WAITER:
            return "Waiter"
