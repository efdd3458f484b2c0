from typing import Optional
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduler.db.models import AuditLog

class AuditService:
    """Adds activity-log rows to the caller's transaction.

    Nothing is committed here: the entry lands together with the change it
    describes, or not at all.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    def record(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[UUID] = None,
        actor_id: Optional[UUID] = None,
        tenant_id: Optional[UUID] = None,
        payload: Optional[dict] = None,
    ) -> AuditLog:
        entry = AuditLog(
            actor_id=actor_id,
            tenant_id=tenant_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            payload=jsonable_encoder(payload) if payload else None,
        )
        self.session.add(entry)
        return entry
