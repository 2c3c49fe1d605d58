"""Doctor-side planning readiness for a surgical case.

A plan is complete when it has a written procedure plan (at least 10 characters
once markup is stripped), a risk assessment (at least 5 characters), a planned
anesthesia, at least one signed consent and at least one pre-op image.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional

from theaterops.workflow.types import ConsentStatus, ImageTimepoint

_TAG_RE = re.compile(r"<[^>]*>")
_ENTITY_RE = re.compile(r"&nbsp;|&#160;", re.IGNORECASE)

MIN_PROCEDURE_PLAN_CHARS = 10
MIN_RISK_FACTORS_CHARS = 5

PROCEDURE_PLAN = "Procedure Plan"
RISK_ASSESSMENT = "Risk Assessment"
ANESTHESIA_PLAN = "Anesthesia Plan"
CONSENT_SIGNED = "Consent Signed"
PRE_OP_PHOTOS = "Pre-Op Photos"


def strip_markup(text: Optional[str]) -> str:
    """Plain text of a rich-text field, whitespace-collapsed."""
    if not text:
        return ""
    plain = _ENTITY_RE.sub(" ", _TAG_RE.sub(" ", text))
    return " ".join(plain.split())


@dataclass
class ReadinessItem:
    key: str
    label: str
    done: bool


@dataclass
class PlanningReadiness:
    items: List[ReadinessItem] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return all(i.done for i in self.items)

    @property
    def missing_required(self) -> List[str]:
        return [i.label for i in self.items if not i.done]

    @property
    def completed_count(self) -> int:
        return sum(1 for i in self.items if i.done)

    @property
    def total_required(self) -> int:
        return len(self.items)

    def to_dict(self) -> dict:
        return {
            "is_complete": self.is_complete,
            "missing_required": self.missing_required,
            "completed_count": self.completed_count,
            "total_required": self.total_required,
            "items": [{"key": i.key, "label": i.label, "done": i.done} for i in self.items],
        }


def evaluate_planning_readiness(
    plan: Any,
    consents: Iterable[Any] = (),
    images: Iterable[Any] = (),
) -> PlanningReadiness:
    """Evaluate the doctor's plan; ``plan`` may be None for a case with no plan yet."""
    procedure = strip_markup(getattr(plan, "procedure_plan", None))
    risks = strip_markup(getattr(plan, "risk_factors", None))
    anesthesia = (getattr(plan, "planned_anesthesia", None) or "").strip()

    signed = any(_value(c.status) == ConsentStatus.SIGNED.value for c in consents)
    pre_op = any(_value(i.timepoint) == ImageTimepoint.PRE_OP.value for i in images)

    return PlanningReadiness(
        items=[
            ReadinessItem("procedure", PROCEDURE_PLAN, len(procedure) >= MIN_PROCEDURE_PLAN_CHARS),
            ReadinessItem("risk", RISK_ASSESSMENT, len(risks) >= MIN_RISK_FACTORS_CHARS),
            ReadinessItem("anesthesia", ANESTHESIA_PLAN, bool(anesthesia)),
            ReadinessItem("consents", CONSENT_SIGNED, signed),
            ReadinessItem("photos", PRE_OP_PHOTOS, pre_op),
        ]
    )


def _value(v: Any) -> Any:
    return getattr(v, "value", v)
