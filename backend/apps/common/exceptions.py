"""
Custom exception handlers for the application.
"""
import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler

from apps.ai.exceptions import AiError, ProviderTransportError

logger = logging.getLogger(__name__)


class AiProviderUnavailable(APIException):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = 'Falha ao comunicar com o provedor de IA.'
    default_code = 'ai_provider_error'


def custom_exception_handler(exc, context):
    """
    Padroniza erros da API em {"error", "status_code", "detail"}.
    Erros do pipeline de IA viram 502.
    """
    if isinstance(exc, AiError):
        detail = {'message': str(exc) or AiProviderUnavailable.default_detail}
        if isinstance(exc, ProviderTransportError) and exc.status_code:
            detail['provider_status'] = exc.status_code
        logger.warning("AI error: %s", exc)
        exc = AiProviderUnavailable(detail=detail)
    
    response = exception_handler(exc, context)
    
    if response is not None:
        custom_response_data = {
            'error': 'An error occurred',
            'status_code': response.status_code,
        }
        
        # Add more details if available
        if hasattr(exc, 'detail'):
            custom_response_data['detail'] = exc.detail
        elif hasattr(exc, 'args') and exc.args:
            custom_response_data['detail'] = str(exc.args[0])
        
        response.data = custom_response_data
    
    return response
