# file: chatwidget/services/session_store.py

import json
import logging
import time
from typing import Callable, List, Optional

import redis.asyncio as aioredis
from pydantic import ValidationError

from chatwidget.core.redis import cache_delete, cache_get, cache_set
from chatwidget.schemas.messages import Message
from chatwidget.schemas.sessions import CachedSessionRecord, Session

logger = logging.getLogger("session_store")

# ============================================================
# Config
# ============================================================

STORAGE_KEY = "cc_chat_session"
SESSION_EXPIRY_SECONDS = 30 * 60  # 30 minutes


def epoch_millis() -> int:
    return int(time.time() * 1000)


# ============================================================
# Store
# ============================================================

class SessionStore:
    """
    One cache slot holding the visitor's session and transcript.

    Freshness is enforced at read time against the saved timestamp; the
    Redis TTL only reclaims slots nobody comes back for.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        *,
        key: str = STORAGE_KEY,
        expiry_seconds: int = SESSION_EXPIRY_SECONDS,
        clock: Callable[[], int] = epoch_millis,
    ) -> None:
        self.redis = redis
        self.key = key
        self.expiry_seconds = expiry_seconds
        self.clock = clock

    @property
    def expiry_millis(self) -> int:
        return self.expiry_seconds * 1000

    async def load(self) -> Optional[CachedSessionRecord]:
        """
        Returns the cached record or None. Corrupt and expired slots are
        purged before returning.
        """
        raw = await cache_get(self.redis, self.key)

        if not raw:
            return None

        try:
            data = json.loads(raw)

            # 🔒 minimal contract check
            if not isinstance(data, dict):
                raise ValueError("cached session is not an object")

            record = CachedSessionRecord.model_validate(data)

        except (ValueError, ValidationError) as e:
            logger.warning(f"[STORE] corrupt session cache, purging: {e}")
            await self.clear()
            return None

        age = record.age_millis(self.clock())
        if age < 0:
            logger.warning(f"[STORE] session cache saved in the future ({-age // 1000}s ahead), purging")
            await self.clear()
            return None

        if age > self.expiry_millis:
            logger.info(f"[STORE] ⏰ session expired (age={age // 1000}s), purging")
            await self.clear()
            return None

        logger.info(f"[STORE] found saved session key={record.session_key} age={age // 1000}s")
        return record

    async def save(self, session: Session, messages: List[Message]) -> CachedSessionRecord:
        """
        Persists the full snapshot with a fresh timestamp (last write wins).
        """
        record = CachedSessionRecord(
            session_id=session.conversation_id,
            session_key=session.session_key,
            conversation_id=session.conversation_id,
            messages=list(messages),
            saved_at=self.clock(),
        )

        await cache_set(
            self.redis,
            self.key,
            record.model_dump_json(by_alias=True),
            ttl_seconds=self.expiry_seconds,
        )
        logger.debug(f"[STORE] saved key={record.session_key} messages={len(record.messages)}")
        return record

    async def clear(self) -> None:
        await cache_delete(self.redis, self.key)
        logger.info("[STORE] 🗑️ session cleared")
