"""Pydantic v2 schemas for the WHO checklist API."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from theaterops.workflow.checklist import ChecklistItem


class ChecklistPhaseRequest(BaseModel):
    items: List[ChecklistItem] = Field(..., min_length=1)


class ChecklistPhaseResponse(BaseModel):
    phase: str
    status: str
    already_completed: bool = False
    items: List[ChecklistItem]
    completed_by_user_id: Optional[str] = None
    completed_by_role: Optional[str] = None
    completed_at: Optional[datetime] = None


class ChecklistStatusResponse(BaseModel):
    phases: Dict[str, Dict[str, Any]]
