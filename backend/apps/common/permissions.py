"""
Custom permissions for multi-tenant access control.
"""

from rest_framework import permissions


class IsTenantMember(permissions.BasePermission):
    """
    Permission to ensure user belongs to a tenant.
    """
    
    def has_permission(self, request, view):
        return bool(
            request.user and
            request.user.is_authenticated and
            getattr(request.user, 'tenant_id', None)
        )


class IsAdminUser(permissions.BasePermission):
    """
    Permission to ensure user is admin.
    """
    
    def has_permission(self, request, view):
        return bool(
            request.user and
            request.user.is_authenticated and
            request.user.is_admin
        )
