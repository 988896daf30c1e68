import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('tenancy', '0001_initial'),
        ('authn', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Conversation',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('contact_phone', models.CharField(db_index=True, max_length=50, verbose_name='Telefone do Contato')),
                ('contact_name', models.CharField(blank=True, max_length=255, verbose_name='Nome do Contato')),
                ('status', models.CharField(choices=[('pending', 'Pendente (Inbox)'), ('open', 'Aberta'), ('closed', 'Fechada')], db_index=True, default='open', max_length=20, verbose_name='Status')),
                ('last_message_at', models.DateTimeField(blank=True, db_index=True, null=True, verbose_name='Última Mensagem')),
                ('metadata', models.JSONField(blank=True, default=dict, verbose_name='Metadados')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Criado em')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='Atualizado em')),
                ('department', models.ForeignKey(blank=True, help_text='Null = Conversa pendente no Inbox', null=True, on_delete=django.db.models.deletion.CASCADE, related_name='conversations', to='authn.department', verbose_name='Departamento')),
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='conversations', to='tenancy.tenant', verbose_name='Tenant')),
            ],
            options={
                'verbose_name': 'Conversa',
                'verbose_name_plural': 'Conversas',
                'db_table': 'chat_conversation',
                'ordering': ['-last_message_at', '-created_at'],
                'indexes': [
                    models.Index(fields=['tenant', 'department', 'status'], name='chat_conv_tenant_dept_idx'),
                    models.Index(fields=['tenant', 'contact_phone'], name='chat_conv_tenant_phone_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Message',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('sender_name', models.CharField(blank=True, max_length=255, verbose_name='Nome do Remetente')),
                ('content', models.TextField(blank=True, verbose_name='Conteúdo')),
                ('direction', models.CharField(choices=[('incoming', 'Recebida'), ('outgoing', 'Enviada')], db_index=True, max_length=10, verbose_name='Direção')),
                ('message_id', models.CharField(blank=True, help_text='ID único para idempotência', max_length=255, null=True, unique=True, verbose_name='ID do Canal')),
                ('status', models.CharField(choices=[('pending', 'Pendente'), ('sent', 'Enviada'), ('delivered', 'Entregue'), ('seen', 'Vista'), ('failed', 'Falhou')], db_index=True, default='pending', max_length=20, verbose_name='Status')),
                ('is_internal', models.BooleanField(default=False, help_text='Notas internas não são enviadas para WhatsApp', verbose_name='Nota Interna')),
                ('metadata', models.JSONField(blank=True, default=dict, verbose_name='Metadados')),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, verbose_name='Criado em')),
                ('conversation', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='messages', to='chat.conversation', verbose_name='Conversa')),
                ('sender', models.ForeignKey(blank=True, help_text='NULL para mensagens incoming', null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL, verbose_name='Remetente')),
            ],
            options={
                'verbose_name': 'Mensagem',
                'verbose_name_plural': 'Mensagens',
                'db_table': 'chat_message',
                'ordering': ['created_at'],
                'indexes': [
                    models.Index(fields=['conversation', 'created_at'], name='chat_msg_conv_created_idx'),
                    models.Index(fields=['status', 'direction'], name='chat_msg_status_dir_idx'),
                ],
            },
        ),
    ]
