from django.contrib import admin
from django.contrib.auth import get_user_model

from apps.authn.models import Department
from .models import Tenant

User = get_user_model()


class TenantUserInline(admin.TabularInline):
    """Inline para mostrar usuários do tenant"""
    model = User
    extra = 0
    fields = ['email', 'first_name', 'last_name', 'role', 'is_active']
    readonly_fields = ['email']
    can_delete = False
    
    def has_add_permission(self, request, obj=None):
        return False


class TenantDepartmentInline(admin.TabularInline):
    """Inline para mostrar departamentos (filas) do tenant"""
    model = Department
    extra = 0
    fields = ['name', 'color', 'ai_enabled']
    can_delete = True


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = ['name', 'status', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['name']
    readonly_fields = ['id', 'created_at', 'updated_at']
    inlines = [TenantDepartmentInline, TenantUserInline]
