from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from uuid import UUID, uuid4
from sqlalchemy import JSON, Column
from sqlalchemy.dialects.postgresql import JSONB

class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_logs"
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    actor_id: Optional[UUID] = None
    tenant_id: Optional[UUID] = None
    action: str # leave_added, leave_deleted, appointment_created, appointment_updated, ...
    entity_type: str
    entity_id: Optional[UUID] = None
    payload: Optional[dict] = Field(default=None, sa_column=Column(JSON().with_variant(JSONB, "postgresql")))
    created_at: datetime = Field(default_factory=datetime.utcnow)
