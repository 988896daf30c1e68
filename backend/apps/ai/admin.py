from django.contrib import admin

from .models import AiConfig, AiRun


@admin.register(AiConfig)
class AiConfigAdmin(admin.ModelAdmin):
    list_display = ['tenant', 'scope_key', 'model', 'default_mode', 'streaming_enabled', 'updated_at']
    list_filter = ['default_mode', 'streaming_enabled', 'vector_store_enabled']
    search_fields = ['tenant__name', 'scope_key', 'model']
    readonly_fields = ['created_at', 'updated_at']


@admin.register(AiRun)
class AiRunAdmin(admin.ModelAdmin):
    list_display = ['tenant', 'conversation_id', 'run_type', 'status', 'latency_ms', 'total_tokens', 'created_at']
    list_filter = ['run_type', 'status']
    search_fields = ['conversation_id']
    readonly_fields = [field.name for field in AiRun._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
