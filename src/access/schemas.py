"""Pydantic schemas for access checks."""

from uuid import UUID

from pydantic import BaseModel

from .models import AccessDecision, AccessReason


class CheckAccessResponse(BaseModel):
    """Access decision for the calling user and a course."""

    course_id: UUID
    has_access: bool
    reason: AccessReason | None = None
    requires_payment: bool = False

    @classmethod
    def from_decision(
        cls, course_id: UUID, decision: AccessDecision
    ) -> "CheckAccessResponse":
        return cls(
            course_id=course_id,
            has_access=decision.has_access,
            reason=decision.reason,
            requires_payment=decision.requires_payment,
        )
