# apps/api/v1/views/health.py
"""
Health check endpoint for load balancers and monitoring.

No authentication required.
"""
from django.db import DatabaseError, connection
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response


@api_view(['GET'])
@permission_classes([AllowAny])
def health_check(request):
    """
    GET /api/health/

    Returns 200 when the database answers, 503 otherwise.
    """
    status = {'status': 'healthy', 'database': 'unknown'}
    try:
        with connection.cursor() as cursor:
            cursor.execute('SELECT 1')
        status['database'] = 'connected'
    except DatabaseError as e:
        status['database'] = f'error: {type(e).__name__}'
        status['status'] = 'unhealthy'
        return Response(status, status=503)

    return Response(status, status=200)
