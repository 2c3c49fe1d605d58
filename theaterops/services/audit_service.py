"""AuditService: append-only audit sink for clinical state changes and blocked attempts.

Each event is written in its own session so that a blocked attempt stays on
record even when the request transaction that triggered it rolls back. A failed
write is logged and swallowed; it never aborts the clinical action.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from theaterops.infra.database.repositories.audit_event import AuditEventRepository

logger = logging.getLogger(__name__)


class AuditService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def record(
        self,
        *,
        actor_user_id: Optional[str],
        action_type: str,
        entity_type: str,
        entity_id: Any,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        try:
            async with self._session_factory() as session:
                await AuditEventRepository(session).create({
                    "actor_user_id": actor_user_id,
                    "action_type": action_type,
                    "entity_type": entity_type,
                    "entity_id": str(entity_id),
                    "event_metadata": _jsonable(metadata or {}),
                })
                await session.commit()
        except Exception as exc:
            logger.warning(
                "AuditService: failed to record %s for %s %s: %s",
                action_type, entity_type, entity_id, exc,
            )


def _jsonable(value: Any) -> Any:
    """UUIDs, enums and datetimes to JSON-friendly primitives for the JSONB column."""
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    if value is None or isinstance(value, (bool, int, float, str)):
        return getattr(value, "value", value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(getattr(value, "value", value))
