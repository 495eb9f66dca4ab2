import logging

from .models import User

logger = logging.getLogger(__name__)


def can_refund_order(user, order):
    """
    Admins may refund any order; branch managers only orders of their own
    branch. Cashiers never may.
    """
    if user is None or not user.is_active:
        return False

    if user.role == User.Role.ADMIN:
        return True

    if user.role == User.Role.BRANCH_MANAGER:
        return user.branch_id is not None and user.branch_id == order.branch_id

    return False


def can_manage_branch_inventory(user, branch):
    """Admins manage every branch's stock, branch managers only their own."""
    if user is None or not user.is_active:
        return False

    if user.role == User.Role.ADMIN:
        return True

    return user.role == User.Role.BRANCH_MANAGER and user.branch_id == branch.pk


def can_manage_transfer(user, transfer):
    """Transfers may be advanced by admins or a manager of either branch."""
    return can_manage_branch_inventory(user, transfer.source_branch) or can_manage_branch_inventory(
        user, transfer.target_branch
    )


def can_adjust_loyalty(user):
    return user is not None and user.is_active and user.role in (
        User.Role.ADMIN,
        User.Role.BRANCH_MANAGER,
    )
