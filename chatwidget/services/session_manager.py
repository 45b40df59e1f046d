# file: chatwidget/services/session_manager.py

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from pydantic import ValidationError

from chatwidget.core.errors import PublicChatError
from chatwidget.core.settings import Settings
from chatwidget.schemas.events import (
    CHAT_MESSAGE_NEW,
    CHAT_SESSION_ASSIGNED,
    CHAT_SESSION_ENDED,
    CHAT_TYPING,
    ChatMessagePayload,
    SessionAssignedPayload,
    TypingPayload,
)
from chatwidget.schemas.messages import Message, SenderType
from chatwidget.schemas.public_chat import PageMetadata
from chatwidget.schemas.sessions import RESUMABLE_STATUSES, CachedSessionRecord, Session, SessionStatus
from chatwidget.schemas.widget import WidgetConfig
from chatwidget.services.heartbeat import LivenessLoop
from chatwidget.services.message_exchange import MessageExchange
from chatwidget.services.public_chat_client import PublicChatClient
from chatwidget.services.realtime_transport import TRANSPORT_CONNECTED, RealtimeTransport
from chatwidget.services.session_store import SessionStore
from chatwidget.services.transcript import TranscriptReconciler
from chatwidget.utils.observers import Observers

logger = logging.getLogger("session_manager")

# Shell-facing events emitted by the manager
TYPING_CHANGED = "typing"
STATUS_CHANGED = "status"
CLOSE_REQUESTED = "close_requested"

MSG_UNABLE_TO_CONNECT = "Sorry, unable to connect. Please try again later."
MSG_CHAT_ENDED = "Chat ended. Thank you!"
STATUS_AGENT_FALLBACK = "an agent"
STATUS_ENDED_BY_SERVER = "Chat ended"


class SessionState(str, Enum):
    CLOSED = "closed"
    VERIFYING = "verifying"
    STARTING = "starting"
    ACTIVE = "active"
    ENDING = "ending"


# ============================================================
# SESSION LIFECYCLE MANAGER
# ============================================================
class SessionManager:
    """
    Owns the visitor session for one embedded widget.

    On ``open`` it resumes a fresh cached session (after the server
    confirms it is still active or queued) or starts a new one. ``end_chat``
    tears everything down whatever the server answers. Failures below this
    class turn into state transitions or transcript messages, never
    exceptions.
    """

    def __init__(
        self,
        config: WidgetConfig,
        settings: Settings,
        *,
        store: SessionStore,
        client: Optional[PublicChatClient] = None,
        transport: Optional[RealtimeTransport] = None,
        page_metadata: Optional[Callable[[], PageMetadata]] = None,
    ) -> None:
        self.config = config
        self.settings = settings
        self.store = store
        self.client = client or PublicChatClient(config.api_url, timeout_seconds=settings.REQUEST_TIMEOUT_SECONDS)
        self.transport = transport or RealtimeTransport(
            config.api_url,
            reconnect_delay=settings.RECONNECT_DELAY_SECONDS,
            reconnect_max_delay=settings.RECONNECT_MAX_DELAY_SECONDS,
            jitter=settings.RECONNECT_JITTER,
            connect_timeout=settings.REQUEST_TIMEOUT_SECONDS,
        )
        self._page_metadata = page_metadata or PageMetadata

        self.events = Observers()
        self.transcript = TranscriptReconciler(events=self.events, on_change=self._persist)
        self.exchange = MessageExchange(
            self.client,
            self.transcript,
            set_typing=self._set_typing,
            set_status=self._set_status,
            is_live=self._is_live,
        )
        self.liveness = LivenessLoop(self._liveness_tick, interval_seconds=settings.HEARTBEAT_INTERVAL_SECONDS)

        self.session: Optional[Session] = None
        self.state = SessionState.CLOSED
        self.is_typing = False
        self.status_text = config.subtitle

        self._open_lock = asyncio.Lock()
        self._close_task: Optional[asyncio.Task] = None

        self.transport.subscribe(TRANSPORT_CONNECTED, self._on_transport_connected)
        self.transport.subscribe(CHAT_MESSAGE_NEW, self._on_message_new)
        self.transport.subscribe(CHAT_SESSION_ASSIGNED, self._on_session_assigned)
        self.transport.subscribe(CHAT_TYPING, self._on_typing)
        self.transport.subscribe(CHAT_SESSION_ENDED, self._on_session_ended)

    # --------------------------------------------------------
    # Open: resume or start
    # --------------------------------------------------------
    async def open(self) -> bool:
        async with self._open_lock:
            if self.session is not None:
                logger.info("[SESSION] already active, nothing to restore")
                self.state = SessionState.ACTIVE
                return True

            record = await self.store.load()
            if record is not None:
                self.state = SessionState.VERIFYING
                if await self._restore(record):
                    return True

            self.state = SessionState.STARTING
            return await self._start()

    async def _restore(self, record: CachedSessionRecord) -> bool:
        logger.info(f"[SESSION] 🔄 verifying cached session {record.session_key}")

        try:
            status = await self.client.check_status(record.conversation_id)
        except PublicChatError as e:
            logger.info(f"[SESSION] ❌ status check failed ({e}), starting new session")
            await self.store.clear()
            return False

        if status.status not in RESUMABLE_STATUSES:
            logger.info(f"[SESSION] ❌ session {status.status.value}, starting new session")
            await self.store.clear()
            return False

        self.session = Session(
            session_key=record.session_key,
            conversation_id=record.conversation_id,
            status=status.status,
        )
        # seamless: the cached snapshot is the transcript, nothing added
        await self.transcript.replace(record.messages)
        await self._go_active()

        logger.info(f"[SESSION] ✅ restored {len(record.messages)} messages")
        return True

    async def _start(self, announce_failure: bool = True) -> bool:
        try:
            started = await self.client.start_session(self.config.tenant_id)
        except PublicChatError as e:
            logger.error(f"❌ [SESSION] failed to start chat session: {e}")
            self.state = SessionState.CLOSED
            if announce_failure:
                await self.transcript.append(Message(sender_type=SenderType.BOT, body=MSG_UNABLE_TO_CONNECT))
            return False

        self.session = Session(
            session_key=started.session_id,
            conversation_id=started.conversation_id,
        )

        if len(self.transcript) == 0:
            await self.transcript.append(Message(sender_type=SenderType.BOT, body=self.config.welcome_message))
        else:
            await self._persist()

        await self._go_active()
        return True

    async def _go_active(self) -> None:
        await self.transport.open(self.session.session_key)
        self.liveness.start()
        self.state = SessionState.ACTIVE

    # --------------------------------------------------------
    # Messages
    # --------------------------------------------------------
    async def send_message(self, text: str) -> Optional[Message]:
        body = (text or "").strip()
        if not body:
            return None

        started = True
        if self.session is None:
            # start under the open lock so a concurrent restore cannot replace
            # the transcript after the visitor message is in
            async with self._open_lock:
                if self.session is None:
                    self.state = SessionState.STARTING
                    started = await self._start(announce_failure=False)

        await self.transcript.add_optimistic(body)

        if not started:
            await self.transcript.append(Message(sender_type=SenderType.BOT, body=MSG_UNABLE_TO_CONNECT))
            return None

        return await self.exchange.send(self.session, body, self._page_metadata())

    async def request_handover(self, reason: str = "") -> Optional[Message]:
        if self.session is None:
            logger.info("[SESSION] handover requested without a session, ignored")
            return None
        return await self.exchange.request_handover(self.session, reason)

    # --------------------------------------------------------
    # End
    # --------------------------------------------------------
    async def end_chat(self) -> bool:
        if self.session is None or self.state is SessionState.ENDING:
            return False

        session = self.session
        self.state = SessionState.ENDING
        logger.info(f"[SESSION] ending conversation {session.conversation_id}")

        try:
            await self.client.end_session(session.conversation_id)
        except PublicChatError as e:
            logger.warning(f"⚠️ [SESSION] end request failed, cleaning up anyway: {e}")
        finally:
            await self._teardown()

        return True

    async def _teardown(self) -> None:
        # drop the key first: persistence and reconnects key off it
        self.session = None

        await self.transport.close()
        await self.liveness.stop()
        await self.store.clear()
        await self._set_typing(False)
        await self._set_status(self.config.subtitle)

        await self.transcript.replace([Message(sender_type=SenderType.BOT, body=self.config.welcome_message)])
        await self.transcript.append(Message(sender_type=SenderType.BOT, body=MSG_CHAT_ENDED))

        self.state = SessionState.CLOSED
        self._schedule_close_request()

    def _schedule_close_request(self) -> None:
        if self._close_task is not None and not self._close_task.done():
            self._close_task.cancel()
        self._close_task = asyncio.create_task(self._request_close_later(), name="chat-close-request")

    async def _request_close_later(self) -> None:
        await asyncio.sleep(self.settings.END_CLOSE_DELAY_SECONDS)
        await self.events.emit(CLOSE_REQUESTED)

    # --------------------------------------------------------
    # Persistence / liveness
    # --------------------------------------------------------
    def _is_live(self, session: Session) -> bool:
        return self.session is session

    async def _persist(self) -> None:
        if self.session is None:
            return
        await self.store.save(self.session, self.transcript.messages)

    async def flush(self) -> None:
        """Page-unload hook: refresh the cached record, never end the session."""
        await self._persist()

    async def _liveness_tick(self) -> None:
        if self.transport.connected:
            await self.transport.send_ping()
        await self._persist()

    async def shutdown(self) -> None:
        """Release background work without ending the conversation."""
        await self._persist()
        await self.transport.close()
        await self.liveness.stop()
        if self._close_task is not None and not self._close_task.done():
            self._close_task.cancel()
            try:
                await self._close_task
            except asyncio.CancelledError:
                pass
        self._close_task = None

    # --------------------------------------------------------
    # Shell state
    # --------------------------------------------------------
    async def _set_typing(self, value: bool) -> None:
        if self.is_typing == value:
            return
        self.is_typing = value
        await self.events.emit(TYPING_CHANGED, value)

    async def _set_status(self, text: str) -> None:
        if self.status_text == text:
            return
        self.status_text = text
        await self.events.emit(STATUS_CHANGED, text)

    # --------------------------------------------------------
    # Transport events
    # --------------------------------------------------------
    async def _on_transport_connected(self) -> None:
        if self.session is not None:
            self.liveness.start()

    async def _on_message_new(self, payload: dict) -> None:
        try:
            event = ChatMessagePayload.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"[WS] bad chat.message.new payload: {e.errors()[:1]}")
            return

        if event.sender_type != SenderType.AGENT.value or self.session is None:
            return

        await self._set_typing(False)
        await self.transcript.append(Message(id=event.message_id, sender_type=SenderType.AGENT, body=event.body))

    async def _on_session_assigned(self, payload: dict) -> None:
        try:
            event = SessionAssignedPayload.model_validate(payload)
        except ValidationError:
            event = SessionAssignedPayload()

        if self.session is not None:
            self.session.status = SessionStatus.ACTIVE
            self.session.agent_name = event.agent_name

        await self._set_status(f"Connected to {event.agent_name or STATUS_AGENT_FALLBACK}")

    async def _on_typing(self, payload: dict) -> None:
        try:
            event = TypingPayload.model_validate(payload)
        except ValidationError:
            event = TypingPayload()

        await self._set_typing(event.sender_type == SenderType.AGENT.value and event.is_typing)

    async def _on_session_ended(self, payload: dict) -> None:
        if self.session is not None:
            self.session.status = SessionStatus.ENDED
        await self._set_status(STATUS_ENDED_BY_SERVER)
