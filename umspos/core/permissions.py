"""
Role-based access control.

Each user carries one role (admin, accountant, user); the table below decides
which parts of the API a role may use. Superusers bypass the table.
"""
from rest_framework.permissions import BasePermission

CREATE_USER = 'create_user'
CREATE_AGENT = 'create_agent'
ADD_METER = 'add_meter'
VIEW_REPORTS = 'view_reports'
MANAGE_SALES = 'manage_sales'
VIEW_INVENTORY = 'view_inventory'
MANAGE_AGENTS = 'manage_agents'

ALL_PERMISSIONS = [
    CREATE_USER, CREATE_AGENT, ADD_METER, VIEW_REPORTS,
    MANAGE_SALES, VIEW_INVENTORY, MANAGE_AGENTS,
]

ROLE_PERMISSIONS = {
    'admin': {
        CREATE_USER: True,
        CREATE_AGENT: True,
        ADD_METER: True,
        VIEW_REPORTS: True,
        MANAGE_SALES: True,
        VIEW_INVENTORY: True,
        MANAGE_AGENTS: True,
    },
    'accountant': {
        CREATE_USER: False,
        CREATE_AGENT: False,
        ADD_METER: False,
        VIEW_REPORTS: True,
        MANAGE_SALES: True,
        VIEW_INVENTORY: True,
        MANAGE_AGENTS: True,
    },
    'user': {
        CREATE_USER: False,
        CREATE_AGENT: False,
        ADD_METER: False,
        VIEW_REPORTS: False,
        MANAGE_SALES: True,
        VIEW_INVENTORY: True,
        MANAGE_AGENTS: False,
    },
}


def has_permission(role, permission):
    """Return True when the role grants the permission; unknown roles get nothing"""
    return ROLE_PERMISSIONS.get(role, {}).get(permission, False)


def user_has_permission(user, permission):
    if not user or not user.is_authenticated or not user.is_active:
        return False
    if user.is_superuser:
        return True
    return has_permission(user.role, permission)


def permissions_for_user(user):
    """Full permission map for the current user (used by the /auth/me endpoint)"""
    return {perm: user_has_permission(user, perm) for perm in ALL_PERMISSIONS}


def is_admin(user):
    return bool(user and user.is_authenticated and (user.is_superuser or user.role == 'admin'))


class HasRolePermission(BasePermission):
    """DRF permission checking one entry of the role table.

    Usage:
        @permission_classes([IsAuthenticated, HasRolePermission.require(ADD_METER)])
    """
    required_permission = None
    message = 'You do not have permission to perform this action.'

    def has_permission(self, request, view):
        return user_has_permission(request.user, self.required_permission)

    @classmethod
    def require(cls, permission):
        return type(
            f'Has{permission.title().replace("_", "")}Permission',
            (cls,),
            {'required_permission': permission},
        )


class IsAdminRole(BasePermission):
    message = 'Only administrators can perform this action.'

    def has_permission(self, request, view):
        return is_admin(request.user)
