from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel

from chatwidget.schemas.sessions import SessionStatus


# ===========================================
# Envelope {success, data}
# ===========================================

class ApiEnvelope(BaseModel):
    success: bool = False
    data: Optional[Any] = None
    error: Optional[Any] = None


# ===========================================
# Start
# ===========================================

class StartSessionRequest(BaseModel):
    tenant_id: str
    channel: str = "web_widget"
    customer_name: str = "Guest"
    customer_email: Optional[str] = None


class StartSessionData(BaseModel):
    session_id: str  # session key
    conversation_id: int
    message: Optional[str] = None


# ===========================================
# Message
# ===========================================

class PageMetadata(BaseModel):
    page_url: str = ""
    page_title: str = ""


class SendMessageRequest(BaseModel):
    session_id: str  # session key
    message: str
    metadata: PageMetadata = PageMetadata()


class MessageReply(BaseModel):
    content: str
    is_agent: bool = False
    message_id: Optional[int] = None
    sender_name: Optional[str] = None
    timestamp: Optional[datetime] = None
    action: Optional[str] = None  # "continue" | "handoff"
    status: Optional[str] = None  # "agent_assigned"


# ===========================================
# End / Status
# ===========================================

class EndSessionRequest(BaseModel):
    session_id: int  # numeric conversation id


class SessionStatusData(BaseModel):
    status: SessionStatus
    session_id: Optional[str] = None
    conversation_id: Optional[int] = None
    assigned_to_id: Optional[int] = None


# ===========================================
# Handover
# ===========================================

class HandoverRequest(BaseModel):
    session_id: str  # session key
    reason: str = ""


class HandoverReply(BaseModel):
    message: str
    status: str  # "handover_requested" | "already_assigned"
