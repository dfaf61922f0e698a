# apps/api/urls.py
"""
Main API URL configuration: versioned routes, health check and OpenAPI docs.
"""
from django.urls import path, include
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView

from .v1.views.health import health_check

urlpatterns = [
    path('v1/', include('apps.api.v1.urls')),
    path('health/', health_check, name='health'),

    # OpenAPI schema and Swagger UI
    path('schema/', SpectacularAPIView.as_view(), name='schema'),
    path('docs/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
]
