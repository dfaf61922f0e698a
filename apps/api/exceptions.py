# apps/api/exceptions.py
"""
DRF exception handler.

Service errors become JSON bodies of the form
{'success': False, 'error': <kind>, 'message': str, ...} with the status
codes below. Anything else goes through DRF's default handler and is
reshaped the same way.
"""
import logging

from django.core.exceptions import ObjectDoesNotExist, ValidationError as DjangoValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from shared.exceptions import (
    ConcurrencyConflict,
    ConservationViolation,
    InvalidStateTransition,
    NotFound,
)

logger = logging.getLogger(__name__)


def _validation_details(exc):
    if hasattr(exc, 'error_dict'):
        return exc.message_dict
    return exc.messages


def _error(kind, message, http_status, **extra):
    body = {'success': False, 'error': kind, 'message': message}
    body.update(extra)
    return Response(body, status=http_status)


def ledger_exception_handler(exc, context):
    view = context.get('view')
    view_name = view.__class__.__name__ if view is not None else '-'

    if isinstance(exc, ConservationViolation):
        logger.warning('%s: conservation violation: %s', view_name, exc.messages)
        return _error(
            'ConservationViolation', ' '.join(exc.messages), status.HTTP_422_UNPROCESSABLE_ENTITY,
            overshoot=str(exc.overshoot) if exc.overshoot is not None else None,
        )
    if isinstance(exc, InvalidStateTransition):
        logger.warning('%s: invalid state transition: %s', view_name, exc.messages)
        return _error(
            'InvalidStateTransition', ' '.join(exc.messages), status.HTTP_409_CONFLICT,
            current_status=exc.current_status,
        )
    if isinstance(exc, DjangoValidationError):
        logger.warning('%s: validation error: %s', view_name, exc.messages)
        return _error(
            'ValidationError', ' '.join(exc.messages), status.HTTP_400_BAD_REQUEST,
            details=_validation_details(exc),
        )
    if isinstance(exc, ConcurrencyConflict):
        logger.warning('%s: concurrency conflict: %s', view_name, exc.message)
        return _error(
            'ConcurrencyConflict', exc.message, status.HTTP_409_CONFLICT,
            retryable=exc.retryable, expected_version=exc.expected, current_version=exc.actual,
        )
    if isinstance(exc, NotFound):
        logger.warning('%s: not found: %s', view_name, exc.message)
        return _error('NotFound', exc.message, status.HTTP_404_NOT_FOUND)
    if isinstance(exc, ObjectDoesNotExist):
        logger.warning('%s: not found: %s', view_name, exc)
        return _error('NotFound', str(exc), status.HTTP_404_NOT_FOUND)
    if isinstance(exc, PermissionError):
        logger.warning('%s: permission denied: %s', view_name, exc)
        return _error('PermissionDenied', str(exc), status.HTTP_403_FORBIDDEN)

    response = drf_exception_handler(exc, context)
    if response is None:
        return None

    data = response.data
    if isinstance(data, dict) and set(data) == {'detail'}:
        message = str(data['detail'])
        details = None
    else:
        message = 'Invalid input.' if response.status_code == 400 else str(data)
        details = data
    kind = {
        400: 'ValidationError',
        401: 'NotAuthenticated',
        403: 'PermissionDenied',
        404: 'NotFound',
        405: 'MethodNotAllowed',
    }.get(response.status_code, exc.__class__.__name__)

    response.data = {'success': False, 'error': kind, 'message': message}
    if details is not None:
        response.data['details'] = details
    return response
