# file: chatwidget/services/public_chat_client.py

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Type, TypeVar

import aiohttp
from pydantic import BaseModel, ValidationError

from chatwidget.core.errors import PublicChatError, PublicChatUnavailable
from chatwidget.schemas.public_chat import (
    ApiEnvelope,
    EndSessionRequest,
    HandoverReply,
    HandoverRequest,
    MessageReply,
    PageMetadata,
    SendMessageRequest,
    SessionStatusData,
    StartSessionData,
    StartSessionRequest,
)

logger = logging.getLogger("public_chat_client")

PUBLIC_CHAT_PATH = "/api/v1/chat/public"

ModelT = TypeVar("ModelT", bound=BaseModel)


# ============================================================
# PUBLIC CHAT API CLIENT
# ============================================================
class PublicChatClient:
    """
    Request/response calls against the public chat API. Every failure
    (HTTP error, ``success: false``, unexpected payload, network error,
    timeout) surfaces as :class:`PublicChatError`.
    """

    def __init__(self, api_url: str, *, timeout_seconds: float = 15.0) -> None:
        self.base_url = api_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

        logger.info(f"[API] PublicChatClient base_url={self.base_url}")

    # --------------------------------------------------------
    # HEADERS
    # --------------------------------------------------------
    @staticmethod
    def _headers() -> Dict[str, str]:
        return {"Content-Type": "application/json", "Accept": "application/json"}

    # --------------------------------------------------------
    # Core request + envelope unwrapping
    # --------------------------------------------------------
    async def _request(self, method: str, path: str, payload: Optional[BaseModel] = None) -> Any:
        url = f"{self.base_url}{PUBLIC_CHAT_PATH}{path}"
        body = payload.model_dump(mode="json") if payload is not None else None

        logger.debug(f"[API] {method} {url} payload={body}")

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.request(method, url, json=body, headers=self._headers()) as resp:
                    raw = await resp.read()

                    if not 200 <= resp.status < 300:
                        logger.warning(f"⚠️ [API] {method} {path} status={resp.status} body={raw[:200]!r}")
                        raise PublicChatError(f"{method} {path} failed with HTTP {resp.status}", status=resp.status)

        except asyncio.TimeoutError as e:
            raise PublicChatUnavailable(f"{method} {path} timed out") from e

        except aiohttp.ClientError as e:
            raise PublicChatUnavailable(f"{method} {path} unreachable: {e}") from e

        try:
            envelope = ApiEnvelope.model_validate(json.loads(raw.decode("utf-8")))
        except (ValueError, ValidationError) as e:
            raise PublicChatError(f"{method} {path} returned a malformed body") from e

        if not envelope.success or envelope.data is None:
            raise PublicChatError(f"{method} {path} rejected: {envelope.error}", status=resp.status)

        return envelope.data

    @staticmethod
    def _parse(model: Type[ModelT], data: Any, path: str) -> ModelT:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise PublicChatError(f"{path} payload does not match {model.__name__}") from e

    # --------------------------------------------------------
    # Start session
    # --------------------------------------------------------
    async def start_session(
        self,
        tenant_id: str,
        *,
        channel: str = "web_widget",
        customer_name: str = "Guest",
        customer_email: Optional[str] = None,
    ) -> StartSessionData:
        payload = StartSessionRequest(
            tenant_id=tenant_id,
            channel=channel,
            customer_name=customer_name,
            customer_email=customer_email,
        )
        data = await self._request("POST", "/start", payload)
        started = self._parse(StartSessionData, data, "/start")

        logger.info(f"[API] 🆕 session started key={started.session_id} conversation={started.conversation_id}")
        return started

    # --------------------------------------------------------
    # Send message
    # --------------------------------------------------------
    async def send_message(
        self,
        session_key: str,
        message: str,
        metadata: Optional[PageMetadata] = None,
    ) -> MessageReply:
        payload = SendMessageRequest(
            session_id=session_key,
            message=message,
            metadata=metadata or PageMetadata(),
        )
        data = await self._request("POST", "/message", payload)
        return self._parse(MessageReply, data, "/message")

    # --------------------------------------------------------
    # End session
    # --------------------------------------------------------
    async def end_session(self, conversation_id: int) -> None:
        await self._request("POST", "/end", EndSessionRequest(session_id=conversation_id))
        logger.info(f"[API] ✅ conversation {conversation_id} ended")

    # --------------------------------------------------------
    # Status
    # --------------------------------------------------------
    async def check_status(self, conversation_id: int) -> SessionStatusData:
        path = f"/status/{conversation_id}"
        data = await self._request("GET", path)
        return self._parse(SessionStatusData, data, path)

    # --------------------------------------------------------
    # Handover (bot -> human)
    # --------------------------------------------------------
    async def request_handover(self, session_key: str, reason: str = "") -> HandoverReply:
        data = await self._request("POST", "/handover", HandoverRequest(session_id=session_key, reason=reason))
        return self._parse(HandoverReply, data, "/handover")
