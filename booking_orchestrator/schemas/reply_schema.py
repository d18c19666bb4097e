"""User-facing reply models returned from a turn."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class FrontendActionType(str, Enum):
    SHOW_PAY_BUTTON = "SHOW_PAY_BUTTON"


class FrontendAction(BaseModel):
    """Hint telling the calling application to render a UI affordance."""
    type: FrontendActionType
    url: Optional[str] = None
    params: dict[str, Any] = Field(default_factory=dict)


class Reply(BaseModel):
    """One assistant reply, optionally carrying a frontend action."""
    model_config = ConfigDict(populate_by_name=True)

    role: str = "assistant"
    content: str
    frontend_action: Optional[FrontendAction] = Field(default=None, alias="frontendAction")


class TurnResponse(BaseModel):
    """Envelope returned by ``SessionOrchestrator.take_turn``."""
    reply: Reply

    @classmethod
    def text(cls, content: str) -> "TurnResponse":
        return cls(reply=Reply(content=content))

    def to_payload(self) -> dict[str, Any]:
        """Serialize with camelCase keys, omitting an absent frontend action."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
