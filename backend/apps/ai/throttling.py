"""
Limite de requisições por tenant/usuário nos endpoints de IA.

Janela fixa de um minuto no cache do Django. O limite de cada escopo vem do
settings (`AI_<ESCOPO>_RATE_PER_MINUTE`), então dá para ajustar por ambiente.
"""
import logging
import time

from django.conf import settings
from django.core.cache import cache
from rest_framework.throttling import BaseThrottle

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60
DEFAULT_RATES = {"reply": 60, "suggest": 30}


class AiRateThrottle(BaseThrottle):
    scope = None

    def __init__(self):
        self.window_start = None

    @classmethod
    def for_scope(cls, scope: str):
        """Classe de throttle para o escopo, no formato que `throttle_classes` espera."""
        return type(f"AiRateThrottle_{scope}", (cls,), {"scope": scope})

    @property
    def rate(self) -> int:
        setting = f"AI_{self.scope.upper()}_RATE_PER_MINUTE"
        return int(getattr(settings, setting, DEFAULT_RATES.get(self.scope, 60)))

    def get_ident(self, request):
        user = getattr(request, "user", None)
        if user is None or not user.is_authenticated:
            return None
        return f"{user.tenant_id}:{user.pk}"

    def allow_request(self, request, view):
        ident = self.get_ident(request)
        if ident is None:
            return True

        now = time.time()
        self.window_start = int(now // WINDOW_SECONDS) * WINDOW_SECONDS
        key = f"ai:rate:{self.scope}:{ident}:{self.window_start}"
        # add só grava se a chave não existe; incr é atômico no backend
        cache.add(key, 0, timeout=WINDOW_SECONDS + 10)
        try:
            count = cache.incr(key)
        except ValueError:
            # chave expirou entre o add e o incr
            cache.set(key, 1, timeout=WINDOW_SECONDS + 10)
            count = 1

        if count > self.rate:
            logger.warning("[AI THROTTLE] Limite %s/min excedido escopo=%s ident=%s", self.rate, self.scope, ident)
            return False
        return True

    def wait(self):
        if self.window_start is None:
            return None
        return max(0.0, self.window_start + WINDOW_SECONDS - time.time())


AiReplyThrottle = AiRateThrottle.for_scope("reply")
AiSuggestThrottle = AiRateThrottle.for_scope("suggest")
