"""
Models para o módulo Flow Chat.
Gerencia conversas (tickets) e mensagens com suporte multi-tenant.
"""
import uuid
from django.db import models
from django.utils import timezone


class Conversation(models.Model):
    """
    Representa uma conversa (ticket) entre o tenant e um contato.
    
    Attributes:
        tenant: Tenant dono da conversa
        department: Departamento (fila) responsável
        contact_phone: Telefone do contato (formato E.164)
        contact_name: Nome do contato
        status: Status da conversa (pending/open/closed)
        last_message_at: Timestamp da última mensagem
        metadata: Dados extras do canal (JSON)
    """
    
    STATUS_CHOICES = [
        ('pending', 'Pendente (Inbox)'),
        ('open', 'Aberta'),
        ('closed', 'Fechada'),
    ]
    
    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False
    )
    tenant = models.ForeignKey(
        'tenancy.Tenant',
        on_delete=models.CASCADE,
        related_name='conversations',
        verbose_name='Tenant'
    )
    department = models.ForeignKey(
        'authn.Department',
        on_delete=models.CASCADE,
        related_name='conversations',
        verbose_name='Departamento',
        null=True,
        blank=True,
        help_text='Null = Conversa pendente no Inbox'
    )
    contact_phone = models.CharField(
        max_length=50,
        db_index=True,
        verbose_name='Telefone do Contato'
    )
    contact_name = models.CharField(
        max_length=255,
        blank=True,
        verbose_name='Nome do Contato'
    )
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default='open',
        db_index=True,
        verbose_name='Status'
    )
    last_message_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        verbose_name='Última Mensagem'
    )
    metadata = models.JSONField(
        default=dict,
        blank=True,
        verbose_name='Metadados'
    )
    created_at = models.DateTimeField(
        auto_now_add=True,
        verbose_name='Criado em'
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        verbose_name='Atualizado em'
    )
    
    class Meta:
        db_table = 'chat_conversation'
        verbose_name = 'Conversa'
        verbose_name_plural = 'Conversas'
        ordering = ['-last_message_at', '-created_at']
        indexes = [
            models.Index(fields=['tenant', 'department', 'status'], name='chat_conv_tenant_dept_idx'),
            models.Index(fields=['tenant', 'contact_phone'], name='chat_conv_tenant_phone_idx'),
        ]
    
    def __str__(self):
        return f"{self.contact_name or self.contact_phone} - {self.tenant.name}"
    
    def update_last_message(self):
        """Atualiza o timestamp da última mensagem."""
        self.last_message_at = timezone.now()
        self.save(update_fields=['last_message_at'])


class Message(models.Model):
    """
    Representa uma mensagem dentro de uma conversa.
    
    Attributes:
        conversation: Conversa à qual a mensagem pertence
        sender: Usuário que enviou (None se incoming ou gerada pela IA)
        content: Conteúdo textual da mensagem
        direction: incoming (recebida) ou outgoing (enviada)
        message_id: ID único do canal (para idempotência)
        status: pending/sent/delivered/seen/failed
        is_internal: Se é nota interna (não vai para WhatsApp)
        metadata: Dados extras; respostas da IA carregam ai_generated,
            ai_model, ai_mode, triggered_by_message_id e usage
    """
    
    DIRECTION_CHOICES = [
        ('incoming', 'Recebida'),
        ('outgoing', 'Enviada'),
    ]
    
    STATUS_CHOICES = [
        ('pending', 'Pendente'),
        ('sent', 'Enviada'),
        ('delivered', 'Entregue'),
        ('seen', 'Vista'),
        ('failed', 'Falhou'),
    ]
    
    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False
    )
    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name='messages',
        verbose_name='Conversa'
    )
    sender = models.ForeignKey(
        'authn.User',
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        verbose_name='Remetente',
        help_text='NULL para mensagens incoming'
    )
    sender_name = models.CharField(
        max_length=255,
        blank=True,
        verbose_name='Nome do Remetente'
    )
    content = models.TextField(
        blank=True,
        verbose_name='Conteúdo'
    )
    direction = models.CharField(
        max_length=10,
        choices=DIRECTION_CHOICES,
        db_index=True,
        verbose_name='Direção'
    )
    message_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        verbose_name='ID do Canal',
        help_text='ID único para idempotência'
    )
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default='pending',
        db_index=True,
        verbose_name='Status'
    )
    is_internal = models.BooleanField(
        default=False,
        verbose_name='Nota Interna',
        help_text='Notas internas não são enviadas para WhatsApp'
    )
    metadata = models.JSONField(
        default=dict,
        blank=True,
        verbose_name='Metadados'
    )
    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        verbose_name='Criado em'
    )
    
    class Meta:
        db_table = 'chat_message'
        verbose_name = 'Mensagem'
        verbose_name_plural = 'Mensagens'
        ordering = ['created_at']
        indexes = [
            models.Index(fields=['conversation', 'created_at'], name='chat_msg_conv_created_idx'),
            models.Index(fields=['status', 'direction'], name='chat_msg_status_dir_idx'),
        ]
    
    def __str__(self):
        return f"[{self.direction}] {self.conversation.contact_phone} - {self.created_at:%d/%m %H:%M}"
    
    def save(self, *args, **kwargs):
        """Atualiza last_message_at da conversa ao salvar."""
        is_new = self._state.adding
        super().save(*args, **kwargs)
        
        if is_new and not self.is_internal:
            self.conversation.update_last_message()
