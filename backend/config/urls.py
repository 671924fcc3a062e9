"""
URL configuration for the knowledge base backend.
"""
from django.urls import path, include

from apps.rag.health import healthz, readyz


urlpatterns = [
    # Health check endpoints (no auth)
    path('healthz', healthz, name='healthz'),
    path('readyz', readyz, name='readyz'),

    # API routes
    path('api/', include('apps.authn.urls')),
    path('api/', include('apps.docs.urls')),
    path('api/', include('apps.rag.urls')),
    path('api/', include('apps.chat.urls')),
]
