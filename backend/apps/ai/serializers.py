"""
Serializers dos endpoints de IA (payloads em camelCase).
"""

from rest_framework import serializers

from apps.ai.config_service import API_FIELDS
from apps.ai.types import AI_MODES, ROLES


class ConfigUpdateSerializer(serializers.Serializer):
    """Atualização da configuração de IA de uma fila (ou global, sem queueId)."""

    queueId = serializers.UUIDField(required=False, allow_null=True)
    model = serializers.CharField(required=False, allow_blank=True, max_length=100)
    temperature = serializers.FloatField(required=False, allow_null=True, min_value=0, max_value=2)
    maxOutputTokens = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    systemPromptReply = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    systemPromptSuggest = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    structuredOutputSchema = serializers.JSONField(required=False, allow_null=True)
    tools = serializers.ListField(child=serializers.DictField(), required=False, allow_null=True)
    vectorStoreEnabled = serializers.BooleanField(required=False)
    vectorStoreIds = serializers.ListField(child=serializers.CharField(), required=False, allow_null=True)
    streamingEnabled = serializers.BooleanField(required=False)
    defaultMode = serializers.ChoiceField(choices=AI_MODES, required=False, allow_null=True)
    confidenceThreshold = serializers.FloatField(required=False, allow_null=True, min_value=0, max_value=1)
    fallbackPolicy = serializers.CharField(required=False, allow_null=True, allow_blank=True, max_length=100)

    def validate_structuredOutputSchema(self, value):
        if value is not None and not isinstance(value, dict):
            raise serializers.ValidationError("O schema deve ser um objeto JSON")
        return value

    def to_overrides(self):
        """Campos enviados, já em snake_case para o store."""
        data = self.validated_data
        return {field: data[api_name] for field, api_name in API_FIELDS.items() if api_name in data}


class ModeSerializer(serializers.Serializer):
    queueId = serializers.UUIDField(required=False, allow_null=True)
    mode = serializers.ChoiceField(choices=AI_MODES)


class ChatMessageSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=ROLES)
    content = serializers.CharField(allow_blank=True, trim_whitespace=False)


class ReplyRequestSerializer(serializers.Serializer):
    conversationId = serializers.CharField(max_length=64)
    queueId = serializers.UUIDField(required=False, allow_null=True)
    messages = ChatMessageSerializer(many=True, allow_empty=False)
    metadata = serializers.DictField(required=False, default=dict)


class SuggestRequestSerializer(serializers.Serializer):
    conversationId = serializers.CharField(max_length=64)
    queueId = serializers.UUIDField(required=False, allow_null=True)
    goal = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    messages = ChatMessageSerializer(many=True, required=False, default=list)
    metadata = serializers.DictField(required=False, default=dict)
