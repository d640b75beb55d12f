"""
Role based permission classes for the portal API.
"""
from rest_framework.permissions import BasePermission, SAFE_METHODS

from .models import FAMILY_ROLES, ROLE_AGENCY_ADMIN, ROLE_SUPER_ADMIN, STAFF_ROLES

ADMIN_ROLES = {ROLE_AGENCY_ADMIN, ROLE_SUPER_ADMIN}


def _role(request):
    user = getattr(request, "user", None)
    if not (user and user.is_authenticated):
        return None
    return getattr(user, "role", None)


class IsAgencyStaff(BasePermission):
    """Agency staff, agency admins and super admins."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) in STAFF_ROLES


class IsAgencyAdmin(BasePermission):
    """Agency admins and super admins."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) in ADMIN_ROLES


class IsSuperAdmin(BasePermission):
    """Only platform super admins."""
    def has_permission(self, request, view) -> bool:
        return _role(request) == ROLE_SUPER_ADMIN


class IsFamily(BasePermission):
    """Family members and family admins."""
    def has_permission(self, request, view) -> bool:
        return _role(request) in FAMILY_ROLES


class StaffWriteOrReadOnly(BasePermission):
    """Anyone authenticated may read; only staff roles may write."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        if request.method in SAFE_METHODS:
            return _role(request) is not None
        return _role(request) in STAFF_ROLES
