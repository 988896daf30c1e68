from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import User, Department


@admin.register(Department)
class DepartmentAdmin(admin.ModelAdmin):
    """Admin para Departamentos (filas)."""
    list_display = ['name', 'tenant', 'ai_enabled', 'created_at']
    list_filter = ['tenant', 'ai_enabled', 'created_at']
    search_fields = ['name', 'tenant__name']
    readonly_fields = ['id', 'created_at', 'updated_at']


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ['username', 'email', 'tenant', 'role', 'is_active', 'date_joined']
    list_filter = ['role', 'is_active', 'tenant', 'date_joined']
    search_fields = ['username', 'email', 'first_name', 'last_name']
    filter_horizontal = ['departments']
    
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Tenant & Role', {
            'fields': ('tenant', 'role', 'departments', 'display_name')
        }),
    )
    
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ('Tenant & Role', {
            'fields': ('email', 'tenant', 'role')
        }),
    )
