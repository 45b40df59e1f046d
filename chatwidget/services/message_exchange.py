# file: chatwidget/services/message_exchange.py

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from chatwidget.core.errors import PublicChatError, PublicChatUnavailable
from chatwidget.schemas.messages import Message, SenderType, utcnow
from chatwidget.schemas.public_chat import MessageReply, PageMetadata
from chatwidget.schemas.sessions import Session, SessionStatus
from chatwidget.services.public_chat_client import PublicChatClient
from chatwidget.services.transcript import TranscriptReconciler

logger = logging.getLogger("message_exchange")

MSG_SEND_REJECTED = "Sorry, I encountered an error. Please try again."
MSG_SEND_UNREACHABLE = "Sorry, unable to send message. Please try again."
STATUS_HANDOFF = "Connecting you to a specialist..."


class MessageExchange:
    """
    Send and handover calls with their transcript side effects.

    Sends are serialized: one request in flight per session, later sends
    wait their turn. Replies that arrive after the session is gone are
    dropped.
    """

    def __init__(
        self,
        client: PublicChatClient,
        transcript: TranscriptReconciler,
        *,
        set_typing: Callable[[bool], Awaitable[None]],
        set_status: Callable[[str], Awaitable[None]],
        is_live: Callable[[Session], bool],
    ) -> None:
        self.client = client
        self.transcript = transcript
        self._set_typing = set_typing
        self._set_status = set_status
        self._is_live = is_live
        self._lock = asyncio.Lock()

    async def send(self, session: Session, body: str, metadata: Optional[PageMetadata] = None) -> Optional[Message]:
        async with self._lock:
            if not self._is_live(session):
                logger.info("[SEND] session gone before send, skipped")
                return None

            reply: Optional[MessageReply] = None
            failure: Optional[PublicChatError] = None

            await self._set_typing(True)
            try:
                reply = await self.client.send_message(session.session_key, body, metadata)
            except PublicChatError as e:
                logger.error(f"❌ [SEND] failed for {session.session_key}: {e}")
                failure = e
            finally:
                await self._set_typing(False)

            if not self._is_live(session):
                logger.info("[SEND] session ended while waiting for the reply, dropped")
                return None

            if reply is None:
                apology = MSG_SEND_UNREACHABLE if isinstance(failure, PublicChatUnavailable) else MSG_SEND_REJECTED
                await self.transcript.append(Message(sender_type=SenderType.BOT, body=apology))
                return None

            return await self._apply_reply(session, reply)

    async def _apply_reply(self, session: Session, reply: MessageReply) -> Message:
        sender = SenderType.AGENT if reply.is_agent else SenderType.BOT
        message = Message(
            id=reply.message_id,
            sender_type=sender,
            body=reply.content,
            timestamp=reply.timestamp or utcnow(),
        )

        if not await self.transcript.append(message):
            logger.info(f"[SEND] reply {reply.message_id} already delivered by push")

        if reply.status == "agent_assigned":
            session.status = SessionStatus.ACTIVE
        if reply.action == "handoff":
            await self._set_status(STATUS_HANDOFF)

        return message

    async def request_handover(self, session: Session, reason: str = "") -> Optional[Message]:
        async with self._lock:
            try:
                reply = await self.client.request_handover(session.session_key, reason)
            except PublicChatError as e:
                logger.error(f"❌ [HANDOVER] failed for {session.session_key}: {e}")
                if self._is_live(session):
                    await self.transcript.append(Message(sender_type=SenderType.BOT, body=MSG_SEND_REJECTED))
                return None

            if not self._is_live(session):
                return None

            logger.info(f"[HANDOVER] {reply.status}")
            message = Message(sender_type=SenderType.BOT, body=reply.message)
            await self.transcript.append(message)
            if reply.status == "handover_requested":
                await self._set_status(STATUS_HANDOFF)
            return message
