"""
Buffer memory: a sliding window over the most recent messages.
"""

import logging
from typing import List, Optional

from .base import BaseMemory
from .interfaces import MemoryStore
from .models import Message
from .options import BufferMemoryOptions
from .tokenizer import truncate_stored_by_count, truncate_stored_messages

logger = logging.getLogger(__name__)


class BufferMemory(BaseMemory):
    """
    Sliding window of recent messages, bounded by count and estimated tokens.

    Trimming happens on write: after every add the oldest non-system messages
    beyond `max_messages` are evicted, then the remainder is cut to
    `max_tokens`, and the store is rewritten with what survived.

    Usage:
        memory = BufferMemory(options=BufferMemoryOptions(max_messages=20))
        await memory.add(Message(role='user', content='Hello!'))
        messages = await memory.get_messages()
    """

    type = 'buffer'

    def __init__(self, store: Optional[MemoryStore] = None, options: Optional[BufferMemoryOptions] = None):
        super().__init__(store, options or BufferMemoryOptions())

    async def add(self, message: Message) -> None:
        await self._store.add_message(self._new_stored(message))
        await self._trim()

    async def add_many(self, messages: List[Message]) -> None:
        for message in messages:
            await self._store.add_message(self._new_stored(message))
        await self._trim()

    async def get_messages(self) -> List[Message]:
        return [s.message for s in await self._load()]

    async def _trim(self) -> None:
        stored = await self._load()
        keep_system = self._options.include_system_messages

        # First by message count, then by token budget
        kept = truncate_stored_by_count(stored, self._options.max_messages, keep_system=keep_system)
        kept = truncate_stored_messages(kept, self._options.max_tokens, keep_system=keep_system)

        if len(kept) < len(stored):
            logger.debug(
                f"Trimmed conversation '{self._conversation_id}' from {len(stored)} to {len(kept)} messages"
            )
            await self._store.replace_messages(self._conversation_id, kept)
