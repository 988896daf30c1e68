from django.urls import path
from . import views

urlpatterns = [
    path('config/', views.ai_config, name='ai-config'),
    path('mode/', views.ai_mode, name='ai-mode'),
    path('reply/', views.ai_reply, name='ai-reply'),
    path('suggest/', views.ai_suggest, name='ai-suggest'),
]
