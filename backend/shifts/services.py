"""
Cashier shift ledger.

Opening a shift records the cashier's cumulative order totals at the branch;
closing it aggregates every order bound to the shift (revenue is the order
subtotal, so delivery fees are excluded) and freezes those figures.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional
import logging

from django.db import transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone
from rest_framework import serializers

from branches.models import Branch
from core_backend.audit import record_audit
from core_backend.exceptions import (
    NotFoundError,
    RequestValidationError,
    StateConflictError,
    validate_lookup,
    validate_or_raise,
)
from core_backend.models import AuditLog
from core_backend.utils.money import quantize_money
from orders.models import Order
from users.models import User

from .filters import ShiftFilter
from .models import Shift
from .serializers import ShiftCloseSerializer, ShiftOpenSerializer

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


@dataclass
class ShiftSummary:
    shift_id: int
    cashier_id: int
    branch_id: int
    is_closed: bool
    started_at: datetime
    ended_at: Optional[datetime]
    opening_cash: Decimal
    orders: int
    revenue: Decimal
    payment_breakdown: Dict[str, Decimal] = field(default_factory=dict)
    refunded_orders: int = 0
    refunded_amount: Decimal = ZERO
    closing_cash: Optional[Decimal] = None

    @property
    def expected_cash(self) -> Decimal:
        return self.opening_cash + self.payment_breakdown.get("cash", ZERO)

    @property
    def cash_difference(self) -> Optional[Decimal]:
        """Counted minus expected drawer cash; None while the shift is open."""
        if self.closing_cash is None:
            return None
        return self.closing_cash - self.expected_cash


class ShiftService:

    @staticmethod
    def _aggregate_orders(orders):
        """
        Count and subtotal sums of ``orders``, split into cash / card / other
        by payment method.
        """
        totals = orders.aggregate(
            count=Count("id"),
            revenue=Sum("subtotal"),
            refunded_count=Count("id", filter=Q(is_refunded=True)),
            refunded_amount=Sum("subtotal", filter=Q(is_refunded=True)),
        )
        breakdown = {"cash": ZERO, "card": ZERO, "other": ZERO}
        for row in orders.values("payment_method").annotate(total=Sum("subtotal")).order_by():
            method = (row["payment_method"] or "").lower()
            key = method if method in ("cash", "card") else "other"
            breakdown[key] += row["total"] or ZERO

        return {
            "orders": totals["count"] or 0,
            "revenue": quantize_money(totals["revenue"] or ZERO),
            "refunded_orders": totals["refunded_count"] or 0,
            "refunded_amount": quantize_money(totals["refunded_amount"] or ZERO),
            "payment_breakdown": {key: quantize_money(value) for key, value in breakdown.items()},
        }

    @staticmethod
    def open_shift(branch_id, cashier_id, opening_cash, notes: str = "") -> Shift:
        """
        Open a shift for a cashier.

        Raises:
            RequestValidationError: negative or missing opening cash
            NotFoundError: branch or cashier missing
            StateConflictError: cashier already has an open shift, or belongs
                to another branch
        """
        data = validate_or_raise(
            ShiftOpenSerializer(
                data={
                    "branch_id": branch_id,
                    "cashier_id": cashier_id,
                    "opening_cash": opening_cash,
                    "notes": notes,
                }
            )
        )
        return ShiftService._open_validated(data)

    @staticmethod
    @transaction.atomic
    def _open_validated(data) -> Shift:
        branch = Branch.objects.filter(pk=data["branch_id"]).first()
        if branch is None:
            raise NotFoundError(f"Branch {data['branch_id']} not found", details={"branch_id": data["branch_id"]})

        cashier = User.objects.select_for_update().filter(pk=data["cashier_id"], is_active=True).first()
        if cashier is None:
            raise NotFoundError(f"Cashier {data['cashier_id']} not found", details={"cashier_id": data["cashier_id"]})

        if cashier.branch_id is not None and cashier.branch_id != branch.pk:
            raise StateConflictError(
                f"{cashier} belongs to another branch",
                details={"cashier_id": cashier.pk, "branch_id": branch.pk},
            )

        if cashier.current_shift_id is not None:
            logger.warning(f"{cashier} tried to open a shift while shift {cashier.current_shift_id} is open")
            raise StateConflictError(
                "Cashier already has an open shift",
                details={"shift_id": cashier.current_shift_id},
            )

        opening = Order.objects.filter(cashier=cashier, branch=branch).aggregate(
            count=Count("id"), revenue=Sum("subtotal")
        )
        shift = Shift.objects.create(
            cashier=cashier,
            branch=branch,
            opening_cash=data["opening_cash"],
            opening_orders=opening["count"] or 0,
            opening_revenue=quantize_money(opening["revenue"] or ZERO),
            notes=data["notes"],
        )

        cashier.current_shift = shift
        cashier.save(update_fields=["current_shift", "updated_at"])

        record_audit(
            AuditLog.Action.SHIFT_OPENED,
            shift,
            user=cashier,
            branch=branch,
            details={"opening_cash": str(shift.opening_cash)},
        )
        logger.info(f"Shift {shift.pk} opened for {cashier} at {branch} with {shift.opening_cash} cash")
        return shift

    @staticmethod
    def close_shift(shift_id, closing_cash, notes: str = "") -> ShiftSummary:
        """
        Close a shift and freeze its totals.

        Raises:
            RequestValidationError: closing cash missing or negative
            NotFoundError: shift missing
            StateConflictError: shift already closed
        """
        data = validate_or_raise(ShiftCloseSerializer(data={"closing_cash": closing_cash, "notes": notes}))
        shift_id = validate_lookup("shift_id", shift_id, serializers.IntegerField(min_value=1))
        return ShiftService._close_validated(shift_id, data)

    @staticmethod
    @transaction.atomic
    def _close_validated(shift_id, data) -> ShiftSummary:
        cashier_id = Shift.objects.filter(pk=shift_id).values_list("cashier_id", flat=True).first()
        if cashier_id is None:
            raise NotFoundError(f"Shift {shift_id} not found", details={"shift_id": shift_id})

        # Cashier before shift, the same order create_order and open_shift lock
        # them in. Holding the cashier keeps new orders off this shift while it closes.
        cashier = User.objects.select_for_update().get(pk=cashier_id)
        shift = Shift.objects.select_for_update().get(pk=shift_id)
        if shift.is_closed:
            raise StateConflictError(
                f"Shift {shift.pk} is already closed",
                details={"shift_id": shift.pk, "ended_at": shift.ended_at.isoformat() if shift.ended_at else None},
            )

        stats = ShiftService._aggregate_orders(Order.objects.filter(shift=shift))
        breakdown = stats["payment_breakdown"]

        shift.closing_cash = data["closing_cash"]
        shift.closing_orders = stats["orders"]
        shift.closing_revenue = stats["revenue"]
        shift.cash_revenue = breakdown["cash"]
        shift.card_revenue = breakdown["card"]
        shift.other_revenue = breakdown["other"]
        shift.ended_at = timezone.now()
        shift.is_closed = True
        if data["notes"]:
            shift.notes = f"{shift.notes}\n{data['notes']}".strip()
        shift.save()

        if cashier.current_shift_id == shift.pk:
            cashier.current_shift = None
            cashier.save(update_fields=["current_shift", "updated_at"])

        record_audit(
            AuditLog.Action.SHIFT_CLOSED,
            shift,
            user=cashier,
            branch=shift.branch,
            details={
                "closing_cash": str(shift.closing_cash),
                "orders": stats["orders"],
                "revenue": str(stats["revenue"]),
            },
        )
        logger.info(
            f"Shift {shift.pk} closed for {cashier}: {stats['orders']} orders, revenue {stats['revenue']}, "
            f"counted {shift.closing_cash}"
        )
        return ShiftService._summary(shift, stats)

    @staticmethod
    def _summary(shift, stats) -> ShiftSummary:
        return ShiftSummary(
            shift_id=shift.pk,
            cashier_id=shift.cashier_id,
            branch_id=shift.branch_id,
            is_closed=shift.is_closed,
            started_at=shift.started_at,
            ended_at=shift.ended_at,
            opening_cash=shift.opening_cash,
            orders=stats["orders"],
            revenue=stats["revenue"],
            payment_breakdown=stats["payment_breakdown"],
            refunded_orders=stats["refunded_orders"],
            refunded_amount=stats["refunded_amount"],
            closing_cash=shift.closing_cash,
        )

    @staticmethod
    def get_shift_summary(shift_id) -> ShiftSummary:
        """
        Totals for a shift: frozen closing figures once closed, live
        aggregates while open.
        """
        shift_id = validate_lookup("shift_id", shift_id, serializers.IntegerField(min_value=1))
        shift = Shift.objects.filter(pk=shift_id).first()
        if shift is None:
            raise NotFoundError(f"Shift {shift_id} not found", details={"shift_id": shift_id})
        return ShiftService._current_summary(shift)

    @staticmethod
    def _current_summary(shift) -> ShiftSummary:
        stats = ShiftService._aggregate_orders(Order.objects.filter(shift=shift))
        if shift.is_closed:
            stats["orders"] = shift.closing_orders or 0
            stats["revenue"] = shift.closing_revenue or ZERO
            stats["payment_breakdown"] = shift.payment_breakdown
        return ShiftService._summary(shift, stats)

    @staticmethod
    def list_shifts(branch_id, params=None) -> List[ShiftSummary]:
        """
        Shifts of a branch, newest first, narrowed by ShiftFilter query
        parameters (cashier, status, start_date, end_date).

        Open shifts carry live figures, closed shifts their frozen ones.
        """
        branch_id = validate_lookup("branch_id", branch_id, serializers.IntegerField(min_value=1))
        queryset = Shift.objects.filter(branch_id=branch_id).order_by("-started_at", "-id")
        filterset = ShiftFilter(params or {}, queryset=queryset)
        if not filterset.is_valid():
            raise RequestValidationError("Invalid shift filters", details=filterset.errors)
        return [ShiftService._current_summary(shift) for shift in filterset.qs]
