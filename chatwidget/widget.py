# file: chatwidget/widget.py

import logging
from typing import Any, Callable, List, Mapping, Optional, Union

import redis.asyncio as aioredis
from pydantic import ValidationError

from chatwidget.core.errors import WidgetConfigError
from chatwidget.core.redis import build_redis
from chatwidget.core.settings import Settings
from chatwidget.schemas.messages import Message
from chatwidget.schemas.public_chat import PageMetadata
from chatwidget.schemas.sessions import Session
from chatwidget.schemas.widget import WidgetConfig
from chatwidget.services.session_manager import CLOSE_REQUESTED, SessionManager
from chatwidget.services.session_store import SessionStore

logger = logging.getLogger("chat_widget")

VISIBILITY_CHANGED = "visibility"


# ============================================================
# Embedding surface
# ============================================================

def init(
    options: Union[Mapping[str, Any], WidgetConfig],
    *,
    settings: Optional[Settings] = None,
    redis: Optional[aioredis.Redis] = None,
    page_metadata: Optional[Callable[[], PageMetadata]] = None,
) -> "ChatWidget":
    """
    Builds one independent widget from the embed options
    (``apiUrl``, ``tenantId``, ``position``, ``primaryColor``, ``title``,
    ``subtitle``, ``welcomeMessage``). ``apiUrl`` and ``tenantId`` fall
    back to ``API_URL`` / ``TENANT_ID`` from settings.
    """
    settings = settings or Settings()

    if isinstance(options, WidgetConfig):
        config = options
    else:
        data = dict(options or {})
        if settings.API_URL and not (data.get("apiUrl") or data.get("api_url")):
            data["apiUrl"] = settings.API_URL
        if settings.TENANT_ID and not (data.get("tenantId") or data.get("tenant_id")):
            data["tenantId"] = settings.TENANT_ID

        try:
            config = WidgetConfig.model_validate(data)
        except ValidationError as e:
            logger.error("CallCenterChat: apiUrl and tenantId are required")
            raise WidgetConfigError(str(e)) from e

    return ChatWidget(config, settings=settings, redis=redis, page_metadata=page_metadata)


class ChatWidget:
    def __init__(
        self,
        config: WidgetConfig,
        *,
        settings: Optional[Settings] = None,
        redis: Optional[aioredis.Redis] = None,
        store: Optional[SessionStore] = None,
        page_metadata: Optional[Callable[[], PageMetadata]] = None,
    ) -> None:
        self.config = config
        self.settings = settings or Settings()

        # a client built here is closed on shutdown
        self._owned_redis: Optional[aioredis.Redis] = None
        if store is None:
            if redis is None:
                redis = self._owned_redis = build_redis(self.settings)
            store = SessionStore(
                redis,
                key=self.settings.STORAGE_KEY,
                expiry_seconds=self.settings.SESSION_EXPIRY_SECONDS,
            )

        self.manager = SessionManager(config, self.settings, store=store, page_metadata=page_metadata)
        self.events = self.manager.events
        self.is_open = False

        self.events.subscribe(CLOSE_REQUESTED, self._on_close_requested)

    # --------------------------------------------------------
    # Shell subscription + snapshot
    # --------------------------------------------------------
    def subscribe(self, event: str, handler: Callable[..., Any]) -> Callable[[], None]:
        return self.events.subscribe(event, handler)

    @property
    def messages(self) -> List[Message]:
        return self.manager.transcript.messages

    @property
    def session(self) -> Optional[Session]:
        return self.manager.session

    @property
    def status_text(self) -> str:
        return self.manager.status_text

    @property
    def is_typing(self) -> bool:
        return self.manager.is_typing

    @property
    def connected(self) -> bool:
        return self.manager.transport.connected

    # --------------------------------------------------------
    # Imperative API
    # --------------------------------------------------------
    async def open(self) -> None:
        if self.is_open:
            return
        self.is_open = True
        await self.events.emit(VISIBILITY_CHANGED, True)
        await self.manager.open()

    async def close(self) -> None:
        if not self.is_open:
            return
        self.is_open = False
        await self.events.emit(VISIBILITY_CHANGED, False)

    async def toggle(self) -> None:
        if self.is_open:
            await self.close()
        else:
            await self.open()

    async def send_message(self, text: str) -> Optional[Message]:
        if not text or not text.strip():
            return None
        if not self.is_open:
            await self.open()
        return await self.manager.send_message(text)

    async def request_handover(self, reason: str = "") -> Optional[Message]:
        return await self.manager.request_handover(reason)

    async def end_chat(self) -> bool:
        return await self.manager.end_chat()

    async def flush(self) -> None:
        await self.manager.flush()

    async def shutdown(self) -> None:
        await self.manager.shutdown()
        if self._owned_redis is not None:
            await self._owned_redis.aclose()
            self._owned_redis = None

    async def _on_close_requested(self) -> None:
        await self.close()
