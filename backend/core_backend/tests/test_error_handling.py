"""
Error Handling Tests

Tests for the service error taxonomy, the DRF exception handler, the
append-only ledger base model and the audit trail.
"""
import pytest
from decimal import Decimal
from rest_framework import serializers, status
from rest_framework.exceptions import ValidationError

from core_backend.audit import record_audit
from core_backend.exceptions import (
    AlreadyRefundedError,
    InsufficientInventoryError,
    NotFoundError,
    PosServiceError,
    RequestValidationError,
    StateConflictError,
    UnauthorizedError,
    pos_exception_handler,
    validate_or_raise,
)
from core_backend.models import AuditLog
from inventory.models import InventoryTransaction
from inventory.services import InventoryService


class _QuantitySerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=1)


class TestServiceErrors:
    """Test the error kinds and their HTTP mapping hints"""

    @pytest.mark.parametrize(
        "error_class,kind,status_code",
        [
            (NotFoundError, "NOT_FOUND", status.HTTP_404_NOT_FOUND),
            (AlreadyRefundedError, "ALREADY_REFUNDED", status.HTTP_409_CONFLICT),
            (StateConflictError, "STATE_CONFLICT", status.HTTP_409_CONFLICT),
            (UnauthorizedError, "UNAUTHORIZED", status.HTTP_403_FORBIDDEN),
            (RequestValidationError, "VALIDATION_ERROR", status.HTTP_400_BAD_REQUEST),
        ],
    )
    def test_error_kinds(self, error_class, kind, status_code):
        """Each error class carries its kind and status code"""
        error = error_class("Something went wrong", details={"id": 1})

        assert isinstance(error, PosServiceError)
        assert error.kind == kind
        assert error.status_code == status_code
        assert error.as_dict() == {"kind": kind, "message": "Something went wrong", "details": {"id": 1}}

    def test_insufficient_inventory_message(self):
        """Insufficient stock errors name the ingredient and both quantities"""
        error = InsufficientInventoryError("Whole Milk", Decimal("0.1"), Decimal("0.4"))

        assert str(error) == "Insufficient stock for Whole Milk. Required: 0.4, Available: 0.1"
        assert error.kind == "INSUFFICIENT_INVENTORY"
        assert error.details["required"] == "0.4"
        assert error.details["available"] == "0.1"

    def test_validate_or_raise_returns_validated_data(self):
        """Valid input comes back as validated data"""
        data = validate_or_raise(_QuantitySerializer(data={"quantity": "3"}))

        assert data["quantity"] == 3

    def test_validate_or_raise_carries_serializer_errors(self):
        """Invalid input raises with the serializer's error dict as details"""
        with pytest.raises(RequestValidationError) as exc_info:
            validate_or_raise(_QuantitySerializer(data={"quantity": 0}))

        assert "quantity" in exc_info.value.details


class TestExceptionHandler:
    """Test the DRF exception handler"""

    def test_renders_service_errors(self):
        """Service errors render as an error envelope with their status code"""
        response = pos_exception_handler(StateConflictError("Shift is closed", details={"shift_id": 4}), {})

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data == {
            "error": {"kind": "STATE_CONFLICT", "message": "Shift is closed", "details": {"shift_id": 4}}
        }

    def test_defers_to_drf_for_api_exceptions(self):
        """DRF's own exceptions keep their default rendering"""
        response = pos_exception_handler(ValidationError({"quantity": ["Required"]}), {})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data == {"quantity": ["Required"]}

    def test_ignores_unknown_exceptions(self):
        """Unexpected exceptions are left for Django to handle"""
        assert pos_exception_handler(RuntimeError("boom"), {}) is None


@pytest.mark.django_db
class TestAppendOnlyRows:
    """Test that ledger and audit rows cannot be edited or removed"""

    def test_ledger_row_cannot_be_updated(self, stocked_branch_a, espresso):
        """Saving an existing ledger row raises"""
        entry = InventoryTransaction.objects.filter(branch=stocked_branch_a, ingredient=espresso).first()
        entry.reason = "Edited"

        with pytest.raises(ValueError, match="append-only"):
            entry.save()

    def test_ledger_row_cannot_be_deleted(self, stocked_branch_a, espresso):
        """Deleting a ledger row raises and leaves it in place"""
        entry = InventoryTransaction.objects.filter(branch=stocked_branch_a, ingredient=espresso).first()

        with pytest.raises(ValueError, match="cannot be deleted"):
            entry.delete()

        assert InventoryTransaction.objects.filter(pk=entry.pk).exists()

    def test_stock_adjustment_is_audited(self, branch_a, admin_user, milk):
        """Manual adjustments write an audit row naming the actor and branch"""
        entry = InventoryService.adjust_stock(branch_a, milk, Decimal("4"), admin_user, reason="Delivery received")

        audit = AuditLog.objects.get(action=AuditLog.Action.STOCK_ADJUSTED, entity_id=str(entry.pk))
        assert audit.user == admin_user
        assert audit.branch == branch_a
        assert audit.details["quantity_change"] == "4.0000"

    def test_record_audit_defaults(self, branch_a):
        """Audit rows default to empty details"""
        entry = record_audit(AuditLog.Action.TRANSFER_CREATED, branch_a)

        assert entry.entity_type == "Branch"
        assert entry.entity_id == str(branch_a.pk)
        assert entry.details == {}
        assert entry.user is None
