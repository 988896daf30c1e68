from django.db import models

from apps.tenancy.models import Tenant


class AiConfig(models.Model):
    """Configuração do assistente de IA por tenant e fila (ou global)."""

    MODE_CHOICES = [
        ('IA_AUTO', 'IA automática'),
        ('COPILOTO', 'Copiloto'),
        ('HUMANO', 'Humano'),
    ]

    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name='ai_configs')
    queue_id = models.UUIDField(null=True, blank=True)
    # queue_id ou '__global__'
    scope_key = models.CharField(max_length=64)
    model = models.CharField(max_length=100, blank=True)
    temperature = models.FloatField(null=True, blank=True)
    max_output_tokens = models.IntegerField(null=True, blank=True)
    system_prompt_reply = models.TextField(blank=True, null=True)
    system_prompt_suggest = models.TextField(blank=True, null=True)
    structured_output_schema = models.JSONField(null=True, blank=True)
    tools = models.JSONField(default=list, blank=True)
    vector_store_enabled = models.BooleanField(default=False)
    vector_store_ids = models.JSONField(default=list, blank=True)
    streaming_enabled = models.BooleanField(default=True)
    default_mode = models.CharField(max_length=16, choices=MODE_CHOICES, null=True, blank=True)
    confidence_threshold = models.FloatField(null=True, blank=True)
    fallback_policy = models.CharField(max_length=100, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'ai_config'
        constraints = [
            models.UniqueConstraint(fields=['tenant', 'scope_key'], name='ai_config_tenant_scope_uniq'),
        ]
        ordering = ['-updated_at']

    def __str__(self):
        return f"AiConfig {self.tenant_id}:{self.scope_key}"


class AiRun(models.Model):
    """Registro de auditoria de cada execução do pipeline (nunca alterado)."""

    RUN_TYPE_CHOICES = [
        ('reply', 'Resposta'),
        ('suggest', 'Sugestão'),
        ('tool_call', 'Ferramenta'),
    ]

    STATUS_CHOICES = [
        ('success', 'Sucesso'),
        ('stubbed', 'Stub'),
        ('partial', 'Parcial'),
        ('aborted', 'Abortado'),
        ('error', 'Erro'),
    ]

    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name='ai_runs')
    conversation_id = models.CharField(max_length=64, blank=True)
    config = models.ForeignKey(
        AiConfig,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='runs',
    )
    run_type = models.CharField(max_length=20, choices=RUN_TYPE_CHOICES)
    request_payload = models.JSONField(default=dict, blank=True)
    response_payload = models.JSONField(default=dict, blank=True, null=True)
    latency_ms = models.IntegerField(null=True, blank=True)
    prompt_tokens = models.IntegerField(null=True, blank=True)
    completion_tokens = models.IntegerField(null=True, blank=True)
    total_tokens = models.IntegerField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='success')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'ai_run'
        indexes = [
            models.Index(fields=['tenant', 'created_at'], name='ai_run_tenant_created_idx'),
            models.Index(fields=['conversation_id', 'created_at'], name='ai_run_conv_created_idx'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.run_type} ({self.status})"
