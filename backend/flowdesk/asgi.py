"""
ASGI config for flowdesk project.

O stream de respostas da IA (`/api/ai/reply/`) só é entregue de forma
incremental quando servido via ASGI (uvicorn/daphne).
"""

import os
from django.core.asgi import get_asgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'flowdesk.settings')

application = get_asgi_application()
