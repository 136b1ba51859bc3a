"""
Permission System Constants and Definitions

WHY: Centralized permission definitions ensure consistency across the application.
All permission codes and role mappings defined here.

DESIGN PRINCIPLES:
- Permissions are granular (one action per permission)
- Role mappings follow principle of least privilege
- Admin has all permissions and is not bound to a branch
"""

# =============================================================================
# PERMISSION CODES
# =============================================================================

VIEW_MENU = "VIEW_MENU"
MANAGE_MENU = "MANAGE_MENU"

CREATE_ORDER = "CREATE_ORDER"
VIEW_ORDERS = "VIEW_ORDERS"
ADVANCE_ORDER = "ADVANCE_ORDER"
SERVE_ORDER = "SERVE_ORDER"
CANCEL_ORDER = "CANCEL_ORDER"

VIEW_KITCHEN_BOARD = "VIEW_KITCHEN_BOARD"

VIEW_STOCK = "VIEW_STOCK"
RECEIVE_STOCK = "RECEIVE_STOCK"
USE_STOCK = "USE_STOCK"
ADJUST_STOCK = "ADJUST_STOCK"

CREATE_SERVICE_REQUEST = "CREATE_SERVICE_REQUEST"
VIEW_SERVICE_REQUESTS = "VIEW_SERVICE_REQUESTS"
UPDATE_SERVICE_REQUEST = "UPDATE_SERVICE_REQUEST"
ASSIGN_SERVICE_REQUEST = "ASSIGN_SERVICE_REQUEST"

VIEW_NOTIFICATIONS = "VIEW_NOTIFICATIONS"

ALL_PERMISSIONS = frozenset({
    VIEW_MENU, MANAGE_MENU,
    CREATE_ORDER, VIEW_ORDERS, ADVANCE_ORDER, SERVE_ORDER, CANCEL_ORDER,
    VIEW_KITCHEN_BOARD,
    VIEW_STOCK, RECEIVE_STOCK, USE_STOCK, ADJUST_STOCK,
    CREATE_SERVICE_REQUEST, VIEW_SERVICE_REQUESTS, UPDATE_SERVICE_REQUEST, ASSIGN_SERVICE_REQUEST,
    VIEW_NOTIFICATIONS,
})


# =============================================================================
# DEFAULT ROLE MAPPINGS
# =============================================================================

ROLES = ("admin", "manager", "receptionist", "waiter", "kitchen", "stock_manager")

ROLE_PERMISSIONS = {
    "admin": ALL_PERMISSIONS,
    "manager": ALL_PERMISSIONS,
    "receptionist": frozenset({
        VIEW_MENU,
        CREATE_ORDER, VIEW_ORDERS, CANCEL_ORDER,
        CREATE_SERVICE_REQUEST, VIEW_SERVICE_REQUESTS, UPDATE_SERVICE_REQUEST, ASSIGN_SERVICE_REQUEST,
        VIEW_NOTIFICATIONS,
    }),
    "waiter": frozenset({
        VIEW_MENU,
        CREATE_ORDER, VIEW_ORDERS, ADVANCE_ORDER, SERVE_ORDER, CANCEL_ORDER,
        VIEW_KITCHEN_BOARD,
        CREATE_SERVICE_REQUEST, VIEW_SERVICE_REQUESTS,
        VIEW_NOTIFICATIONS,
    }),
    "kitchen": frozenset({
        VIEW_MENU,
        VIEW_ORDERS, ADVANCE_ORDER, CANCEL_ORDER,
        VIEW_KITCHEN_BOARD,
        VIEW_STOCK, USE_STOCK,
        VIEW_NOTIFICATIONS,
    }),
    "stock_manager": frozenset({
        VIEW_MENU,
        VIEW_STOCK, RECEIVE_STOCK, USE_STOCK, ADJUST_STOCK,
        VIEW_NOTIFICATIONS,
    }),
}


def has_permission(role: str, permission_code: str) -> bool:
    return permission_code in ROLE_PERMISSIONS.get(role, frozenset())


def permissions_for(role: str) -> list[str]:
    return sorted(ROLE_PERMISSIONS.get(role, frozenset()))
