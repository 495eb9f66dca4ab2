"""
Service-layer exceptions shared by every POS app.

Each error carries a machine-checkable ``kind`` so callers (and tests) can
branch on the failure without parsing messages. ``status_code`` is only a hint
for the HTTP layer; the services themselves never build responses.
"""
import logging

from rest_framework import serializers, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class PosServiceError(Exception):
    """
    Base exception for POS service errors.
    """

    kind = "POS_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def as_dict(self):
        return {
            "kind": self.kind,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(PosServiceError):
    """Raised when a referenced entity does not exist"""

    kind = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND


class ItemUnavailableError(PosServiceError):
    """Raised when a menu item or variant exists but is inactive"""

    kind = "ITEM_UNAVAILABLE"
    status_code = status.HTTP_409_CONFLICT


class InsufficientInventoryError(PosServiceError):
    """
    Raised when a stock mutation would drive a branch inventory row negative.
    """

    kind = "INSUFFICIENT_INVENTORY"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, ingredient, available, required, message=None):
        self.ingredient = ingredient
        self.available = available
        self.required = required
        if message is None:
            message = (
                f"Insufficient stock for {ingredient}. "
                f"Required: {required}, Available: {available}"
            )
        super().__init__(
            message,
            details={
                "ingredient_id": getattr(ingredient, "pk", None),
                "ingredient": str(ingredient),
                "available": str(available),
                "required": str(required),
            },
        )


class AlreadyRefundedError(PosServiceError):
    """Raised when refunding an order that has already been refunded"""

    kind = "ALREADY_REFUNDED"
    status_code = status.HTTP_409_CONFLICT


class StateConflictError(PosServiceError):
    """Raised when an operation is illegal for the entity's current state"""

    kind = "STATE_CONFLICT"
    status_code = status.HTTP_409_CONFLICT


class UnauthorizedError(PosServiceError):
    """Raised when the principal's role or branch does not allow the operation"""

    kind = "UNAUTHORIZED"
    status_code = status.HTTP_403_FORBIDDEN


class RequestValidationError(PosServiceError):
    """Raised when request input fails serializer validation"""

    kind = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST

    @classmethod
    def from_serializer(cls, serializer):
        return cls("Invalid request data", details=serializer.errors)


def validate_or_raise(serializer):
    """
    Run ``serializer.is_valid()`` and convert failures into a
    RequestValidationError. Returns the validated data.
    """
    if not serializer.is_valid():
        raise RequestValidationError.from_serializer(serializer)
    return serializer.validated_data


def validate_lookup(name, value, field):
    """
    Parse a single id with a DRF field. A malformed value raises
    RequestValidationError keyed by ``name`` instead of reaching the ORM.
    """
    try:
        return field.run_validation(value)
    except serializers.ValidationError as exc:
        raise RequestValidationError("Invalid request data", details={name: exc.detail}) from exc


def pos_exception_handler(exc, context):
    """
    DRF exception handler that renders PosServiceError instances with their
    kind and status code, deferring to the default handler for anything else.
    """
    if isinstance(exc, PosServiceError):
        request = context.get("request")
        logger.warning(
            f"POS service error {exc.kind}: {exc.message}",
            extra={"path": getattr(request, "path", None)},
        )
        return Response({"error": exc.as_dict()}, status=exc.status_code)

    return exception_handler(exc, context)
