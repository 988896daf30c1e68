"""
URL configuration for flowdesk project.
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/ai/', include('apps.ai.urls')),
]
