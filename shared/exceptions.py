# shared/exceptions.py
"""
Error types raised by the ledger services.

ValidationError is Django's own; the service layer raises it for malformed
input the same way model clean() does. The subclasses below let callers
(and the API exception handler) tell the rejection kinds apart.
"""
from django.core.exceptions import ObjectDoesNotExist, ValidationError


class ConservationViolation(ValidationError):
    """
    An allocation would over-apply money: more than the payment holds, or
    more than an invoice still owes.
    """

    def __init__(self, message, overshoot=None, code='conservation_violation', params=None):
        super().__init__(message, code=code, params=params)
        self.overshoot = overshoot


class InvalidStateTransition(ValidationError):
    """The document's lifecycle status does not permit the operation."""

    def __init__(self, message, current_status=None, code='invalid_state', params=None):
        super().__init__(message, code=code, params=params)
        self.current_status = current_status


class ConcurrencyConflict(Exception):
    """
    A row changed between read and write. The caller should reload and retry.
    """
    retryable = True

    def __init__(self, message, model=None, pk=None, expected=None, actual=None):
        super().__init__(message)
        self.message = message
        self.model = model
        self.pk = pk
        self.expected = expected
        self.actual = actual


class NotFound(ObjectDoesNotExist):
    """A referenced invoice, payment or party does not exist in the entity."""

    def __init__(self, message, model=None, pk=None):
        super().__init__(message)
        self.message = message
        self.model = model
        self.pk = pk
