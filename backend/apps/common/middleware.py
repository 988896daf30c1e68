"""
Custom middleware for tenant isolation and request tracking.
"""

import uuid
import logging
from django.utils.deprecation import MiddlewareMixin

logger = logging.getLogger(__name__)


class TenantMiddleware(MiddlewareMixin):
    """
    Middleware to add tenant context to requests.
    
    IMPORTANTE: Este middleware deve vir DEPOIS do AuthenticationMiddleware
    mas a autenticação JWT do DRF acontece na view, não no middleware.
    Por isso, vamos usar process_view para ter acesso ao usuário autenticado.
    """
    
    def process_request(self, request):
        """Add request ID to request."""
        request.request_id = str(uuid.uuid4())[:8]
        # Preenchido no process_view
        request.tenant = None
        request.tenant_id = None
    
    def process_view(self, request, view_func, view_args, view_kwargs):
        """
        Add tenant context to request after authentication.
        """
        user = getattr(request, 'user', None)
        if user is not None and user.is_authenticated:
            request.tenant = getattr(user, 'tenant', None)
        else:
            # Sem sessão: tentar obter o usuário do token JWT
            try:
                from rest_framework_simplejwt.authentication import JWTAuthentication
                auth_result = JWTAuthentication().authenticate(request)
            except Exception as e:
                logger.debug("Request %s - JWT inválido: %s", request.request_id, e)
                auth_result = None
            if auth_result:
                user, _token = auth_result
                request.user = user
                request.tenant = getattr(user, 'tenant', None)
        request.tenant_id = str(request.tenant.id) if request.tenant else None
        
        logger.debug(
            "Request %s - User: %s - Tenant: %s - Path: %s",
            request.request_id,
            getattr(request.user, 'email', 'anonymous') if hasattr(request, 'user') else 'anonymous',
            request.tenant_id or 'none',
            request.path,
        )
    
    def process_response(self, request, response):
        """Add request ID to response headers."""
        if hasattr(request, 'request_id'):
            response['X-Request-ID'] = request.request_id
        return response
