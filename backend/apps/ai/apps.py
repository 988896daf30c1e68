from django.apps import AppConfig


class AiAppConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.ai'
    verbose_name = 'AI'

    def ready(self):
        """Cria o registro de ferramentas compartilhado pelo pipeline."""
        from apps.ai.builtin_tools import register_builtin_tools
        from apps.ai.conf import get_tool_timeout
        from apps.ai.tool_registry import ToolRegistry

        self.tool_registry = register_builtin_tools(ToolRegistry(timeout=get_tool_timeout()))
