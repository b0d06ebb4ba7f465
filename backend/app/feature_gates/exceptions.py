"""Exceptions surfaced when subscription rules block an operation."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status

from ..subscriptions.models import Decision


@dataclass
class FeatureGateError(Exception):
    """Represents an actionable gating failure surfaced to API callers."""

    code: str
    message: str
    status_code: int = status.HTTP_403_FORBIDDEN
    detail: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        base_detail: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.detail:
            base_detail.update(self.detail)
        object.__setattr__(self, "_payload", base_detail)
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        return self._payload

    @classmethod
    def from_decision(cls, decision: Decision) -> "FeatureGateError":
        """Wrap a rejected purchase decision so the host can show its reason."""

        if decision.allowed:
            raise ValueError("Only rejected decisions can be converted into gate errors")
        detail: Dict[str, Any] = {"candidate_type": decision.candidate_type}
        if decision.conflicting_type:
            detail["conflicting_type"] = decision.conflicting_type
        return cls(
            code=decision.outcome.value,
            message=decision.reason or "This subscription cannot be purchased.",
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
        )

    def to_http_exception(self) -> HTTPException:
        """Convert the domain error into a FastAPI HTTPException."""

        return HTTPException(status_code=self.status_code, detail=dict(self.payload))
