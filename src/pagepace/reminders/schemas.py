"""Payload and result types for push reminders."""

from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import BaseModel, Field


class PushPayload(BaseModel):
    """Notification shown on the reader's device."""

    title: str = Field(..., min_length=1)
    body: str
    tag: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)
    require_interaction: bool = Field(default=False, serialization_alias="requireInteraction")

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict in the shape service workers expect."""
        return self.model_dump(by_alias=True, exclude_none=True)


@dataclass
class DeliveryResult:
    """Outcome of delivering one payload to one subscription."""

    endpoint: str
    ok: bool
    status_code: Optional[int] = None
    error: Optional[str] = None


@dataclass
class DispatchReport:
    """Result of a reminder batch or a single-user send."""

    matched_users: list[str] = field(default_factory=list)
    sent_count: int = 0
    failed_count: int = 0
    failures: list[tuple[str, str]] = field(default_factory=list)  # (user_id or endpoint, reason)

    @property
    def success(self) -> bool:
        return len(self.failures) == 0

    def record(self, result: DeliveryResult) -> None:
        """Count a delivery outcome."""
        if result.ok:
            self.sent_count += 1
        else:
            self.failed_count += 1
            self.failures.append((result.endpoint, result.error or "delivery failed"))
