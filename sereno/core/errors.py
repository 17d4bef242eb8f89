"""Typed failures raised by the emergency and chat services.

Routers translate these into HTTP responses with ``to_http_exception``;
``DeliveryFailure`` never leaves the notification worker.
"""

from __future__ import annotations

from fastapi import HTTPException, status


class EmergencyServiceError(ValueError):
    """Base class for service-level failures."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(EmergencyServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class AccessDenied(EmergencyServiceError):
    status_code = status.HTTP_403_FORBIDDEN


class InvalidTransition(EmergencyServiceError):
    status_code = status.HTTP_409_CONFLICT


class AlertAlreadyResolved(EmergencyServiceError):
    status_code = status.HTTP_409_CONFLICT


class AlreadyRegistered(EmergencyServiceError):
    status_code = status.HTTP_409_CONFLICT


class MessageRejected(EmergencyServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


class DeliveryFailure(EmergencyServiceError):
    """Push delivery failed. Caught and logged inside the dispatcher."""

    status_code = status.HTTP_502_BAD_GATEWAY


def to_http_exception(exc: EmergencyServiceError) -> HTTPException:
    """Map a service error to the HTTP error the router should raise."""
    return HTTPException(status_code=exc.status_code, detail=str(exc))
