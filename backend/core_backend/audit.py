import logging

from core_backend.models import AuditLog

logger = logging.getLogger(__name__)


def record_audit(action, entity, user=None, branch=None, details=None):
    """
    Append an AuditLog row for ``entity``.

    Must be called inside the caller's transaction so the audit row commits or
    rolls back together with the change it describes.
    """
    entry = AuditLog.objects.create(
        action=action,
        entity_type=entity.__class__.__name__,
        entity_id=str(entity.pk),
        user=user,
        branch=branch,
        details=details or {},
    )
    logger.debug(f"Audit {action} recorded for {entry.entity_type}#{entry.entity_id}")
    return entry
