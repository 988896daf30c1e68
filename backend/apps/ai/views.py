import logging
import uuid

from asgiref.sync import async_to_sync
from django.http import StreamingHttpResponse
from rest_framework import serializers
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.exceptions import NotFound, PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from apps.ai import config_service
from apps.ai.reply_service import build_reply_service
from apps.ai.serializers import (
    ConfigUpdateSerializer,
    ModeSerializer,
    ReplyRequestSerializer,
    SuggestRequestSerializer,
)
from apps.ai.sse import stream_events
from apps.ai.stores import DjangoConfigStore
from apps.ai.throttling import AiReplyThrottle, AiSuggestThrottle
from apps.authn.models import Department
from apps.common.permissions import IsAdminUser, IsTenantMember

logger = logging.getLogger(__name__)


def _queue_id(request, value):
    """Valida o queueId recebido e garante que a fila pertence ao tenant."""
    if not value:
        return None
    try:
        queue_id = str(uuid.UUID(str(value)))
    except ValueError:
        raise serializers.ValidationError({'queueId': 'UUID inválido'})
    if not Department.objects.filter(id=queue_id, tenant_id=request.user.tenant_id).exists():
        raise NotFound('Fila não encontrada')
    if not request.user.can_access_department(queue_id):
        raise PermissionDenied('Sem acesso a esta fila')
    return queue_id


@api_view(['GET', 'PUT'])
@permission_classes([IsAuthenticated, IsTenantMember])
def ai_config(request):
    """Configuração efetiva de IA (GET) ou atualização do escopo (PUT, somente admin)."""
    store = DjangoConfigStore()
    tenant_id = str(request.user.tenant_id)

    if request.method == 'GET':
        queue_id = _queue_id(request, request.query_params.get('queueId'))
        return Response(async_to_sync(config_service.get_config_settings)(store, tenant_id, queue_id))

    if not IsAdminUser().has_permission(request, None):
        return Response({'error': 'Apenas administradores podem alterar a IA'}, status=403)

    serializer = ConfigUpdateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    queue_id = _queue_id(request, serializer.validated_data.get('queueId'))
    data = async_to_sync(config_service.update_config_settings)(
        store, tenant_id, queue_id, serializer.to_overrides()
    )
    logger.info("[AI CONFIG] Atualizada por %s (tenant=%s)", request.user.email, tenant_id)
    return Response(data)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsTenantMember])
def ai_mode(request):
    store = DjangoConfigStore()
    tenant_id = str(request.user.tenant_id)

    if request.method == 'GET':
        queue_id = _queue_id(request, request.query_params.get('queueId'))
        return Response(async_to_sync(config_service.get_mode)(store, tenant_id, queue_id))

    serializer = ModeSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    queue_id = _queue_id(request, serializer.validated_data.get('queueId'))
    data = async_to_sync(config_service.update_mode)(
        store, tenant_id, queue_id, serializer.validated_data['mode']
    )
    return Response(data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsTenantMember])
@throttle_classes([AiReplyThrottle])
def ai_reply(request):
    """
    Resposta da IA em streaming (`text/event-stream`).

    Eventos: `delta`, `tool_call`, `done` ou `error`. Falhas do provedor depois
    que o stream abriu chegam como `event: error`, nunca como status HTTP.
    """
    serializer = ReplyRequestSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    tenant_id = str(request.user.tenant_id)
    queue_id = _queue_id(request, data.get('queueId'))
    conversation_id = data['conversationId']
    service = build_reply_service()

    async def pipeline(emit, abort_event):
        try:
            await service.stream_reply(
                tenant_id,
                queue_id,
                conversation_id,
                data['messages'],
                data.get('metadata'),
                emit=emit,
                abort_event=abort_event,
            )
        finally:
            # o loop da thread SSE fecha logo depois; não perder o upsert pendente
            await service.resolver.wait_pending_writes()

    logger.info("[AI REPLY] Requisição de %s conversation=%s", request.user.email, conversation_id)
    response = StreamingHttpResponse(stream_events(pipeline), content_type='text/event-stream')
    response['Cache-Control'] = 'no-cache'
    response['X-Accel-Buffering'] = 'no'
    return response


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsTenantMember])
@throttle_classes([AiSuggestThrottle])
def ai_suggest(request):
    """Sugestão estruturada para o atendente. Falha do provedor vira 502."""
    serializer = SuggestRequestSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    tenant_id = str(request.user.tenant_id)
    queue_id = _queue_id(request, data.get('queueId'))

    service = build_reply_service()

    async def run_suggest():
        try:
            return await service.suggest(
                tenant_id,
                queue_id,
                data['conversationId'],
                data.get('goal'),
                data.get('messages') or [],
                data.get('metadata'),
            )
        finally:
            await service.resolver.wait_pending_writes()

    result = async_to_sync(run_suggest)()
    return Response({
        'suggestion': result.payload,
        'confidence': result.confidence,
        'model': result.model,
        'usage': result.usage,
        'status': result.status,
    })
