"""
Signals para o módulo Flow Chat.
"""
import logging
from django.db.models.signals import post_save
from django.dispatch import receiver
from apps.chat.models import Message

logger = logging.getLogger(__name__)


@receiver(post_save, sender=Message)
def log_message_created(sender, instance, created, **kwargs):
    """Log quando uma mensagem é criada."""
    if created:
        logger.info(
            "[CHAT] Nova mensagem (%s): %s - %s",
            instance.direction,
            instance.conversation.contact_phone,
            instance.content[:50] if instance.content else '[sem texto]',
        )


@receiver(post_save, sender=Message)
def trigger_ai_auto_reply(sender, instance, created, **kwargs):
    """Dispara a resposta automática da IA para mensagens recebidas."""
    if not created or instance.is_internal or instance.direction != 'incoming':
        return
    from apps.ai.auto_reply import dispatch_auto_reply_async
    dispatch_auto_reply_async(instance)
