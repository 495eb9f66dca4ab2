"""
Inter-branch inventory transfers.

A transfer moves through PENDING -> APPROVED -> IN_TRANSIT -> COMPLETED (or
PENDING -> CANCELLED). Stock only moves on completion, when one ADJUSTMENT row
is written per item on each branch's ledger.
"""
from decimal import Decimal
import logging
import uuid

from django.db import transaction
from django.utils import timezone
from rest_framework import serializers

from branches.models import Branch
from core_backend.audit import record_audit
from core_backend.exceptions import (
    NotFoundError,
    StateConflictError,
    UnauthorizedError,
    validate_lookup,
    validate_or_raise,
)
from core_backend.models import AuditLog
from products.models import Ingredient
from users.permissions import can_manage_branch_inventory, can_manage_transfer

from .models import BranchInventory, InventoryTransaction, InventoryTransfer, InventoryTransferItem
from .serializers import TransferCreateSerializer, TransferStatusSerializer
from .services import InventoryService

logger = logging.getLogger(__name__)

Status = InventoryTransfer.Status


class TransferService:

    VALID_TRANSITIONS = {
        Status.PENDING: [Status.APPROVED, Status.CANCELLED],
        Status.APPROVED: [Status.IN_TRANSIT],
        Status.IN_TRANSIT: [Status.COMPLETED],
        Status.COMPLETED: [],
        Status.CANCELLED: [],
    }

    # (actor field, timestamp field) stamped when entering a status
    STATUS_STAMPS = {
        Status.APPROVED: ("approved_by", "approved_at"),
        Status.IN_TRANSIT: ("shipped_by", "shipped_at"),
        Status.COMPLETED: ("completed_by", "completed_at"),
        Status.CANCELLED: ("cancelled_by", "cancelled_at"),
    }

    @staticmethod
    def validate_transition(current_status, target_status):
        """
        Raises StateConflictError unless ``current_status -> target_status`` is
        a legal transfer transition. Has no side effects.
        """
        allowed = TransferService.VALID_TRANSITIONS.get(current_status, [])
        if target_status not in allowed:
            raise StateConflictError(
                f"Cannot transition transfer from {current_status} to {target_status}",
                details={
                    "current_status": current_status,
                    "target_status": target_status,
                    "allowed": [str(s) for s in allowed],
                },
            )

    @staticmethod
    def _generate_transfer_number():
        return f"TRF-{uuid.uuid4().hex[:8].upper()}"

    @staticmethod
    @transaction.atomic
    def create_transfer(source_branch_id, target_branch_id, items, requested_by, notes: str = "") -> InventoryTransfer:
        """
        Create a PENDING transfer.

        Args:
            items: list of ``{"ingredient_id": int, "quantity": Decimal}``
        """
        data = validate_or_raise(
            TransferCreateSerializer(
                data={
                    "source_branch_id": source_branch_id,
                    "target_branch_id": target_branch_id,
                    "items": items,
                    "notes": notes,
                }
            )
        )

        branches = Branch.objects.in_bulk([data["source_branch_id"], data["target_branch_id"]])
        source_branch = branches.get(data["source_branch_id"])
        target_branch = branches.get(data["target_branch_id"])
        if source_branch is None or target_branch is None:
            raise NotFoundError(
                "Transfer branch not found",
                details={"source_branch_id": source_branch_id, "target_branch_id": target_branch_id},
            )

        if not (
            can_manage_branch_inventory(requested_by, source_branch)
            or can_manage_branch_inventory(requested_by, target_branch)
        ):
            raise UnauthorizedError(f"User {requested_by} may not request transfers between these branches")

        ingredient_ids = [item["ingredient_id"] for item in data["items"]]
        ingredients = Ingredient.all_objects.in_bulk(ingredient_ids)
        missing = sorted(set(ingredient_ids) - set(ingredients))
        if missing:
            raise NotFoundError(f"Ingredients not found: {missing}", details={"ingredient_ids": missing})

        transfer = InventoryTransfer.objects.create(
            transfer_number=TransferService._generate_transfer_number(),
            source_branch=source_branch,
            target_branch=target_branch,
            requested_by=requested_by,
            notes=data["notes"],
        )
        for item in data["items"]:
            ingredient = ingredients[item["ingredient_id"]]
            source_inventory, _ = BranchInventory.objects.get_or_create(
                branch=source_branch, ingredient=ingredient, defaults={"current_stock": Decimal("0")}
            )
            InventoryTransferItem.objects.create(
                transfer=transfer,
                ingredient=ingredient,
                quantity=item["quantity"],
                source_inventory=source_inventory,
            )

        record_audit(
            AuditLog.Action.TRANSFER_CREATED,
            transfer,
            user=requested_by,
            branch=source_branch,
            details={
                "transfer_number": transfer.transfer_number,
                "target_branch_id": target_branch.pk,
                "items": [
                    {"ingredient_id": item["ingredient_id"], "quantity": str(item["quantity"])}
                    for item in data["items"]
                ],
            },
        )
        logger.info(
            f"Transfer {transfer.transfer_number} requested: {source_branch} -> {target_branch} "
            f"({len(data['items'])} items)"
        )
        return transfer

    @staticmethod
    @transaction.atomic
    def advance_transfer(transfer_id, target_status, actor) -> InventoryTransfer:
        """
        Move a transfer to ``target_status``.

        Completing an already completed transfer returns it unchanged, so a
        retried completion never moves stock twice.

        Raises:
            NotFoundError, UnauthorizedError, StateConflictError,
            InsufficientInventoryError (on completion)
        """
        target_status = validate_or_raise(TransferStatusSerializer(data={"status": target_status}))["status"]

        transfer_id = validate_lookup("transfer_id", transfer_id, serializers.IntegerField(min_value=1))
        transfer = InventoryTransfer.objects.select_for_update().filter(pk=transfer_id).first()
        if transfer is None:
            raise NotFoundError(f"Transfer {transfer_id} not found", details={"transfer_id": transfer_id})

        if not can_manage_transfer(actor, transfer):
            raise UnauthorizedError(
                f"User {actor} may not manage transfer {transfer.transfer_number}",
                details={"transfer_id": transfer.pk},
            )

        current_status = transfer.status
        if current_status == Status.COMPLETED and target_status == Status.COMPLETED:
            logger.info(f"Transfer {transfer.transfer_number} already completed; nothing to do")
            return transfer

        try:
            TransferService.validate_transition(current_status, target_status)
        except StateConflictError:
            logger.warning(
                f"Rejected transfer {transfer.transfer_number} transition {current_status} -> {target_status}"
            )
            raise

        actor_field, timestamp_field = TransferService.STATUS_STAMPS[target_status]
        now = timezone.now()
        setattr(transfer, actor_field, actor)
        setattr(transfer, timestamp_field, now)
        transfer.status = target_status
        update_fields = ["status", actor_field, timestamp_field, "updated_at"]

        if target_status == Status.COMPLETED:
            TransferService._post_to_ledgers(transfer, actor)
            update_fields.append("ledger_posted_at")

        transfer.save(update_fields=update_fields)

        record_audit(
            AuditLog.Action.TRANSFER_STATUS_CHANGED,
            transfer,
            user=actor,
            branch=transfer.source_branch,
            details={
                "transfer_number": transfer.transfer_number,
                "from_status": current_status,
                "to_status": target_status,
            },
        )
        logger.info(
            f"Transfer {transfer.transfer_number} moved {current_status} -> {target_status} by {actor}"
        )
        return transfer

    @staticmethod
    def _post_to_ledgers(transfer, actor):
        """
        Move every item's quantity from the source branch to the target branch.

        Caller must hold the lock on ``transfer``. Runs at most once per
        transfer, guarded by ``ledger_posted_at``.
        """
        if transfer.ledger_posted_at is not None:
            logger.info(f"Transfer {transfer.transfer_number} ledger already posted; skipping")
            return

        items = list(transfer.items.select_related("ingredient").order_by("ingredient_id"))
        source, target = transfer.source_branch, transfer.target_branch

        # Lock both branches' rows in one global (branch_id, ingredient_id) order.
        keys = sorted(
            [(source.pk, item.ingredient_id) for item in items]
            + [(target.pk, item.ingredient_id) for item in items]
        )
        branches = {source.pk: source, target.pk: target}
        ingredients = {item.ingredient_id: item.ingredient for item in items}
        locked = {
            (branch_id, ingredient_id): InventoryService._lock_inventory(
                branches[branch_id], ingredients[ingredient_id]
            )
            for branch_id, ingredient_id in keys
        }

        for item in items:
            source_inventory = locked[(source.pk, item.ingredient_id)]
            target_inventory = locked[(target.pk, item.ingredient_id)]
            InventoryService._append_entry(
                source_inventory,
                InventoryTransaction.TransactionType.ADJUSTMENT,
                -item.quantity,
                actor=actor,
                transfer=transfer,
                reason=f"Transfer to {target.name} - {transfer.transfer_number}",
                reference=transfer.transfer_number,
            )
            InventoryService._append_entry(
                target_inventory,
                InventoryTransaction.TransactionType.ADJUSTMENT,
                item.quantity,
                actor=actor,
                transfer=transfer,
                reason=f"Transfer from {source.name} - {transfer.transfer_number}",
                reference=transfer.transfer_number,
            )
            item.source_inventory = source_inventory
            item.target_inventory = target_inventory
            item.save(update_fields=["source_inventory", "target_inventory"])

        transfer.ledger_posted_at = timezone.now()

    @staticmethod
    @transaction.atomic
    def delete_transfer(transfer_id, actor):
        """Only PENDING transfers can be deleted."""
        transfer_id = validate_lookup("transfer_id", transfer_id, serializers.IntegerField(min_value=1))
        transfer = InventoryTransfer.objects.select_for_update().filter(pk=transfer_id).first()
        if transfer is None:
            raise NotFoundError(f"Transfer {transfer_id} not found", details={"transfer_id": transfer_id})
        if not can_manage_transfer(actor, transfer):
            raise UnauthorizedError(f"User {actor} may not delete transfer {transfer.transfer_number}")
        if transfer.status != Status.PENDING:
            raise StateConflictError(
                f"Only pending transfers can be deleted; {transfer.transfer_number} is {transfer.status}",
                details={"status": transfer.status},
            )
        number = transfer.transfer_number
        transfer.delete()
        logger.info(f"Transfer {number} deleted by {actor}")
