from typing import List, Optional

from pydantic import BaseModel

from chatwidget.schemas.messages import Message


class PreviewCreated(BaseModel):
    preview_id: str


class PreviewMessageIn(BaseModel):
    text: str


class PreviewHandoverIn(BaseModel):
    reason: str = ""


class PreviewSnapshot(BaseModel):
    preview_id: str
    is_open: bool
    is_typing: bool
    connected: bool
    status_text: str
    session_key: Optional[str] = None
    conversation_id: Optional[int] = None
    messages: List[Message]
