"""AuditEvent repository (append-only)."""
from __future__ import annotations

from typing import List

from sqlalchemy import select

from theaterops.infra.database.models.audit_event import AuditEvent
from theaterops.infra.database.repositories.base import BaseRepository


class AuditEventRepository(BaseRepository[AuditEvent]):
    model = AuditEvent

    async def list_for_entity(self, entity_type: str, entity_id: str, limit: int = 200) -> List[AuditEvent]:
        stmt = (
            select(AuditEvent)
            .where(AuditEvent.entity_type == entity_type)
            .where(AuditEvent.entity_id == entity_id)
            .order_by(AuditEvent.created_at)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
