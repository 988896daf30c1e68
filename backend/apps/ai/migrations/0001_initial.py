import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('tenancy', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='AiConfig',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('queue_id', models.UUIDField(blank=True, null=True)),
                ('scope_key', models.CharField(max_length=64)),
                ('model', models.CharField(blank=True, max_length=100)),
                ('temperature', models.FloatField(blank=True, null=True)),
                ('max_output_tokens', models.IntegerField(blank=True, null=True)),
                ('system_prompt_reply', models.TextField(blank=True, null=True)),
                ('system_prompt_suggest', models.TextField(blank=True, null=True)),
                ('structured_output_schema', models.JSONField(blank=True, null=True)),
                ('tools', models.JSONField(blank=True, default=list)),
                ('vector_store_enabled', models.BooleanField(default=False)),
                ('vector_store_ids', models.JSONField(blank=True, default=list)),
                ('streaming_enabled', models.BooleanField(default=True)),
                ('default_mode', models.CharField(blank=True, choices=[('IA_AUTO', 'IA automática'), ('COPILOTO', 'Copiloto'), ('HUMANO', 'Humano')], max_length=16, null=True)),
                ('confidence_threshold', models.FloatField(blank=True, null=True)),
                ('fallback_policy', models.CharField(blank=True, max_length=100, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='ai_configs', to='tenancy.tenant')),
            ],
            options={
                'db_table': 'ai_config',
                'ordering': ['-updated_at'],
            },
        ),
        migrations.AddConstraint(
            model_name='aiconfig',
            constraint=models.UniqueConstraint(fields=('tenant', 'scope_key'), name='ai_config_tenant_scope_uniq'),
        ),
        migrations.CreateModel(
            name='AiRun',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('conversation_id', models.CharField(blank=True, max_length=64)),
                ('run_type', models.CharField(choices=[('reply', 'Resposta'), ('suggest', 'Sugestão'), ('tool_call', 'Ferramenta')], max_length=20)),
                ('request_payload', models.JSONField(blank=True, default=dict)),
                ('response_payload', models.JSONField(blank=True, default=dict, null=True)),
                ('latency_ms', models.IntegerField(blank=True, null=True)),
                ('prompt_tokens', models.IntegerField(blank=True, null=True)),
                ('completion_tokens', models.IntegerField(blank=True, null=True)),
                ('total_tokens', models.IntegerField(blank=True, null=True)),
                ('status', models.CharField(choices=[('success', 'Sucesso'), ('stubbed', 'Stub'), ('partial', 'Parcial'), ('aborted', 'Abortado'), ('error', 'Erro')], default='success', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('config', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='runs', to='ai.aiconfig')),
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='ai_runs', to='tenancy.tenant')),
            ],
            options={
                'db_table': 'ai_run',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['tenant', 'created_at'], name='ai_run_tenant_created_idx'),
                    models.Index(fields=['conversation_id', 'created_at'], name='ai_run_conv_created_idx'),
                ],
            },
        ),
    ]
