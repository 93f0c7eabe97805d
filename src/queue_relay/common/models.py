from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ForwardOutcome(str, Enum):
    FORWARDED = "forwarded"
    ERROR = "error"


class AckPolicy(str, Enum):
    ALWAYS = "always"
    ON_SUCCESS = "on_success"

    def should_acknowledge(self, outcome: ForwardOutcome) -> bool:
        if self == AckPolicy.ALWAYS:
            return True
        return outcome == ForwardOutcome.FORWARDED


class QueueMessage(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    body: bytes
    message_id: Optional[str] = None
    # SDK message, receipt handle or ack id, depending on the backend
    delivery_handle: Any = Field(default=None, exclude=True, repr=False)
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ForwardAttempt(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    body: bytes
    content_type: str = "application/json"
    auth_token: Optional[str] = Field(default=None, repr=False)

    def headers(self) -> Dict[str, str]:
        headers = {"Content-Type": self.content_type}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers
