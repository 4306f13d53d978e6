"""Best-effort audit trail."""
import uuid
from typing import Any, Dict, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from stitchcraft.database.models import AuditLog

logger = structlog.get_logger(__name__)


async def log_audit(
    db: AsyncSession,
    user_id: Optional[uuid.UUID],
    action: str,
    resource: str,
    resource_id: Optional[Any] = None,
    details: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
) -> None:
    """
    Append an audit entry to the current transaction.

    Failures are logged and never raised; the entry commits or rolls back
    with the action it describes.
    """
    try:
        async with db.begin_nested():
            db.add(
                AuditLog(
                    user_id=user_id,
                    action=action,
                    resource=resource,
                    resource_id=str(resource_id) if resource_id is not None else None,
                    details=details,
                    ip_address=ip_address,
                )
            )
    except SQLAlchemyError as e:
        logger.warning("audit_log_failed", action=action, resource=resource, error=str(e))
