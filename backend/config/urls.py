"""
URL configuration for the document tutor backend.
"""
from django.urls import path, include

from apps.chat.health import healthz, readyz


urlpatterns = [
    # Health check endpoints
    path('healthz', healthz, name='healthz'),
    path('readyz', readyz, name='readyz'),

    # API routes
    path('api/', include('apps.chat.urls')),
    path('api/', include('apps.tutor.urls')),
    path('api/docs/', include('apps.docs.urls')),
]
