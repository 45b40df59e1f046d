# file: chatwidget/services/realtime_transport.py

import asyncio
import logging
from typing import Any, Callable, Optional

import aiohttp
from pydantic import ValidationError
from tenacity import AsyncRetrying, RetryCallState, retry_if_result, wait_exponential, wait_random

from chatwidget.schemas.events import PING, RealtimeEvent
from chatwidget.utils.observers import Observers
from chatwidget.utils.urls import websocket_url

logger = logging.getLogger("realtime_transport")

# Connection-state events (inbound frames are published under their own ``type``)
TRANSPORT_CONNECTED = "transport.connected"
TRANSPORT_DISCONNECTED = "transport.disconnected"

RECONNECT_DELAY_SECONDS = 3.0
RECONNECT_MAX_DELAY_SECONDS = 30.0


class RealtimeTransport:
    """
    Reconnecting websocket bound to one session key.

    Each ``open`` starts a new generation; a reconnect only proceeds while
    its generation is still current and a session key is set, so ``close``
    wins over any reconnect already waiting on its delay.
    """

    def __init__(
        self,
        api_url: str,
        *,
        reconnect_delay: float = RECONNECT_DELAY_SECONDS,
        reconnect_max_delay: float = RECONNECT_MAX_DELAY_SECONDS,
        jitter: float = 0.2,
        connect_timeout: float = 15.0,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.connect_timeout = connect_timeout

        # capped exponential backoff, first retry at reconnect_delay, plus up to jitter * reconnect_delay
        self.wait = wait_exponential(multiplier=reconnect_delay, max=reconnect_max_delay) + wait_random(
            0, reconnect_delay * jitter
        )

        self.events = Observers()
        self.connected = False
        self.connect_count = 0

        self._session_key: Optional[str] = None
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None

    # --------------------------------------------------------
    # Subscriptions
    # --------------------------------------------------------
    def subscribe(self, event_type: str, handler: Callable[..., Any]) -> Callable[[], None]:
        return self.events.subscribe(event_type, handler)

    @property
    def session_key(self) -> Optional[str]:
        return self._session_key

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_open(self) -> bool:
        return self._task is not None and not self._task.done()

    # --------------------------------------------------------
    # Open / close
    # --------------------------------------------------------
    async def open(self, session_key: Optional[str]) -> None:
        if not session_key or self.is_open:
            return

        self._generation += 1
        self._session_key = session_key
        self._task = asyncio.create_task(
            self._run(self._generation, session_key),
            name=f"chat-ws-{self._generation}",
        )

    async def close(self) -> None:
        self._session_key = None
        self._generation += 1

        task, self._task = self._task, None
        ws, self._ws = self._ws, None
        self.connected = False

        if ws is not None and not ws.closed:
            try:
                await ws.close()
            except Exception as e:
                logger.warning(f"[WS] error closing socket: {e}")

        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        logger.info("[WS] 🔌 closed")

    # --------------------------------------------------------
    # Outbound
    # --------------------------------------------------------
    async def send_ping(self) -> bool:
        ws = self._ws
        if ws is None or not self.connected or ws.closed:
            return False

        try:
            await ws.send_json({"type": PING})
            logger.debug("[WS] 💓 ping sent")
            return True
        except Exception as e:
            logger.warning(f"[WS] ping failed: {e}")
            return False

    # --------------------------------------------------------
    # Connection loop
    # --------------------------------------------------------
    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self._session_key is not None

    @staticmethod
    def _log_reconnect(retry_state: RetryCallState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.info(f"[WS] reconnecting in {delay:.1f}s (attempt {retry_state.attempt_number})")

    async def _run(self, generation: int, session_key: str) -> None:
        url = websocket_url(self.api_url, session_key)
        timeout = aiohttp.ClientTimeout(total=None, connect=self.connect_timeout)

        retrying = AsyncRetrying(
            wait=self.wait,
            retry=retry_if_result(lambda _: self._is_current(generation)),
            before_sleep=self._log_reconnect,
        )

        # every finished connection (or failed dial) is retried while the generation is current
        async for attempt in retrying:
            connected = await self._connect_once(generation, url, timeout)
            if connected:
                # an established connection resets the backoff
                attempt.retry_state.attempt_number = 1
            attempt.retry_state.set_result(connected)

    async def _connect_once(self, generation: int, url: str, timeout: aiohttp.ClientTimeout) -> bool:
        """Dials once and pumps frames until the socket ends. Returns True if it connected."""
        if not self._is_current(generation):
            return False

        was_connected = False
        try:
            async with aiohttp.ClientSession(timeout=timeout) as http:
                async with http.ws_connect(url) as ws:
                    if not self._is_current(generation):
                        return False

                    self._ws = ws
                    self.connected = True
                    self.connect_count += 1
                    was_connected = True
                    logger.info(f"[WS] 🔌 connected {url}")
                    await self.events.emit(TRANSPORT_CONNECTED)

                    async for msg in ws:
                        if msg.type == aiohttp.WSMsgType.TEXT:
                            await self._dispatch(msg.data)
                        elif msg.type == aiohttp.WSMsgType.ERROR:
                            logger.warning(f"[WS] socket error: {ws.exception()}")
                            break

        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.warning(f"[WS] connection failed: {e}")

        finally:
            if self._is_current(generation):
                self._ws = None
                self.connected = False

        if was_connected and self._is_current(generation):
            logger.info("[WS] disconnected")
            await self.events.emit(TRANSPORT_DISCONNECTED)

        return was_connected

    async def _dispatch(self, raw: str) -> None:
        try:
            event = RealtimeEvent.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"[WS] malformed frame ignored: {e.errors()[:1]}")
            return

        logger.debug(f"[WS] ← {event.type}")
        # no subscriber for a type means it is ignored
        await self.events.emit(event.type, event.payload)
