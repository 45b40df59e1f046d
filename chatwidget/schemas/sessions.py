from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from chatwidget.schemas.messages import Message


class SessionStatus(str, Enum):
    QUEUED = "queued"
    ACTIVE = "active"
    ENDED = "ended"
    ABANDONED = "abandoned"


RESUMABLE_STATUSES = {SessionStatus.QUEUED, SessionStatus.ACTIVE}


# ===========================================
# Live session (in memory)
# ===========================================

class Session(BaseModel):
    session_key: str  # ws routing key + correlation id for sends
    conversation_id: int  # status checks + end
    status: SessionStatus = SessionStatus.ACTIVE  # hint only, server is authoritative
    agent_name: Optional[str] = None


# ===========================================
# Cached record (persisted slot)
# ===========================================

class CachedSessionRecord(BaseModel):
    session_id: int = Field(alias="sessionId")
    session_key: str = Field(alias="sessionKey")
    conversation_id: int = Field(alias="conversationId")
    messages: List[Message] = Field(default_factory=list)
    saved_at: int = Field(alias="timestamp")  # epoch millis

    class Config:
        populate_by_name = True

    def age_millis(self, now_millis: int) -> int:
        return now_millis - self.saved_at
