"""
Admin para Flow Chat.
"""
from django.contrib import admin
from apps.chat.models import Conversation, Message


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):
    """Admin para Conversas."""
    
    list_display = [
        'contact_phone', 'contact_name', 'tenant', 'department',
        'status', 'last_message_at', 'created_at'
    ]
    list_filter = ['status', 'tenant', 'department', 'created_at']
    search_fields = ['contact_phone', 'contact_name']
    readonly_fields = ['id', 'created_at', 'updated_at', 'last_message_at']


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    """Admin para Mensagens."""
    
    list_display = [
        'get_contact', 'direction', 'status', 'sender_name',
        'is_internal', 'created_at'
    ]
    list_filter = ['direction', 'status', 'is_internal', 'created_at']
    search_fields = ['conversation__contact_phone', 'conversation__contact_name', 'content']
    readonly_fields = ['id', 'message_id', 'created_at']
    
    fieldsets = (
        ('Conversa', {
            'fields': ('conversation', 'sender', 'sender_name')
        }),
        ('Mensagem', {
            'fields': ('content', 'direction', 'status', 'is_internal')
        }),
        ('Metadados', {
            'fields': ('message_id', 'metadata'),
            'classes': ('collapse',)
        }),
        ('Timestamps', {
            'fields': ('created_at',)
        }),
    )
    
    def get_contact(self, obj):
        """Retorna telefone do contato."""
        return obj.conversation.contact_phone
    get_contact.short_description = 'Contato'
