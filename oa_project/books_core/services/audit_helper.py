import logging
from typing import Optional

from ..models import AuditLog, Company

logger = logging.getLogger(__name__)


def log_action(
    *,
    action: str,
    instance,
    user=None,
    company: Optional[Company] = None,
    changes: dict | None = None,
    using: str = "default",
):
    """
    Central audit logger.
    Written inside the caller's transaction, so the audit row commits or
    rolls back together with the change it describes.
    """
    if not company:
        company = getattr(instance, "company", None)

    entry = AuditLog.objects.db_manager(using).create(
        company=company,
        user=user,
        action=action,
        object_type=instance.__class__.__name__,
        object_id=str(instance.pk),
        changes=changes,
    )
    logger.debug("audit %s %s(%s)", action, entry.object_type, entry.object_id)
    return entry
