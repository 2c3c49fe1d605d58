"""FastAPI dependency providers."""
from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Optional

from fastapi import Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from theaterops.config.booking import BookingConfig
from theaterops.core.exceptions import UnauthorizedError
from theaterops.services.audit_service import AuditService
from theaterops.workflow.types import Actor, parse_role


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield a transactional AsyncSession from the app-level session factory."""
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_audit(request: Request) -> AuditService:
    """Audit sink writing through its own sessions, independent of the request transaction."""
    return AuditService(request.app.state.session_factory)


def get_booking_config(request: Request) -> BookingConfig:
    return getattr(request.app.state, "booking_config", None) or BookingConfig()


def get_actor(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> Actor:
    """Identity forwarded by the upstream auth gateway.

    Credentials are verified upstream; requests without both headers are rejected.
    """
    role = parse_role(x_user_role)
    if not x_user_id or not x_user_id.strip() or role is None:
        raise UnauthorizedError("X-User-Id and a valid X-User-Role header are required")
    return Actor(user_id=x_user_id.strip(), role=role)
