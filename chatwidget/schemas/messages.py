import html
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class SenderType(str, Enum):
    VISITOR = "visitor"
    BOT = "bot"
    AGENT = "agent"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ===========================================
# Transcript entry
# ===========================================

class Message(BaseModel):
    id: Optional[int] = None  # server message id, absent while optimistic
    sender_type: SenderType = Field(alias="senderType")
    body: str
    timestamp: datetime = Field(default_factory=utcnow)

    class Config:
        populate_by_name = True

    @property
    def optimistic(self) -> bool:
        return self.id is None

    @property
    def html(self) -> str:
        return html.escape(self.body)
