# file: chatwidget/services/transcript.py

import logging
from typing import Awaitable, Callable, Iterable, Iterator, List, Optional, Set

from chatwidget.schemas.messages import Message, SenderType
from chatwidget.utils.observers import Observers

logger = logging.getLogger("transcript")

# Shell-facing events
MESSAGE_APPENDED = "message"
TRANSCRIPT_RESET = "reset"
SCROLL_TO_LATEST = "scroll"


class TranscriptReconciler:
    """
    Ordered, de-duplicated message list for one session.

    Three origins feed it: the cache (``replace``), the visitor
    (``add_optimistic``) and the server (``append``, from send replies and
    transport pushes). Only ``replace`` ever drops entries; an entry with a
    server id that is already present is skipped.
    """

    def __init__(
        self,
        events: Optional[Observers] = None,
        on_change: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        self.events = events or Observers()
        self._on_change = on_change
        self._messages: List[Message] = []
        self._ids: Set[int] = set()

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def has_message(self, message_id: int) -> bool:
        return message_id in self._ids

    async def append(self, message: Message) -> bool:
        """
        Appends in display order. Returns False when a message with the same
        server id is already in the transcript.
        """
        if message.id is not None and message.id in self._ids:
            logger.debug(f"[TRANSCRIPT] duplicate message id={message.id} skipped")
            return False

        self._messages.append(message)
        if message.id is not None:
            self._ids.add(message.id)

        await self.events.emit(MESSAGE_APPENDED, message)
        await self.events.emit(SCROLL_TO_LATEST)
        await self._changed()
        return True

    async def add_optimistic(self, body: str) -> Message:
        message = Message(sender_type=SenderType.VISITOR, body=body)
        await self.append(message)
        return message

    async def replace(self, messages: Iterable[Message]) -> None:
        """
        Swaps the whole transcript (cache restore, or reset after an end).
        The snapshot is taken as-is.
        """
        self._messages = list(messages)
        self._ids = {m.id for m in self._messages if m.id is not None}

        logger.info(f"[TRANSCRIPT] replaced with {len(self._messages)} messages")

        await self.events.emit(TRANSCRIPT_RESET, self.messages)
        await self.events.emit(SCROLL_TO_LATEST)
        await self._changed()

    async def _changed(self) -> None:
        if self._on_change is not None:
            await self._on_change()
