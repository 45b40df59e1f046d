from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

# Inbound frame types
CHAT_MESSAGE_NEW = "chat.message.new"
CHAT_SESSION_ASSIGNED = "chat.session.assigned"
CHAT_SESSION_ENDED = "chat.session.ended"
CHAT_TYPING = "chat.typing"

# Outbound
PING = "ping"


class RealtimeEvent(BaseModel):
    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)


class ChatMessagePayload(BaseModel):
    session_id: Optional[int] = None
    message_id: Optional[int] = None
    sender_type: str = ""
    sender_name: Optional[str] = None
    body: str = ""


class SessionAssignedPayload(BaseModel):
    session_id: Optional[int] = None
    agent_id: Optional[int] = None
    agent_name: Optional[str] = None
    status: Optional[str] = None


class TypingPayload(BaseModel):
    session_id: Optional[int] = None
    sender_type: str = ""
    sender_name: Optional[str] = None
    is_typing: bool = False
