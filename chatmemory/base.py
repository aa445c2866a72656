"""
Shared plumbing for memory strategies.
"""

from typing import List, Optional

from .interfaces import Memory, MemoryStore
from .models import (
    Message,
    StoredMessage,
    ConversationContext,
    default_clock,
    default_id_factory,
    sort_by_timestamp,
)
from .options import MemoryOptions
from .stores import InMemoryStore
from .tokenizer import estimate_messages_tokens, truncate_messages


class BaseMemory(Memory):
    """
    Binds a memory strategy to a store and a conversation id.

    Subclasses implement `add`, `add_many` and `get_messages`; counting,
    clearing and token-bounded context windows are shared.
    """

    def __init__(self, store: Optional[MemoryStore], options: MemoryOptions):
        self._store = store if store is not None else InMemoryStore()
        self._options = options
        self._clock = options.clock or default_clock
        self._id_factory = options.id_factory or default_id_factory
        self._conversation_id = options.conversation_id or self._id_factory()

    @property
    def store(self) -> MemoryStore:
        return self._store

    @property
    def options(self) -> MemoryOptions:
        return self._options

    @property
    def conversation_id(self) -> str:
        return self._conversation_id

    @conversation_id.setter
    def conversation_id(self, value: str) -> None:
        """Switch to a different conversation."""
        self._conversation_id = value

    def _new_stored(self, message: Message, embedding: Optional[List[float]] = None) -> StoredMessage:
        return StoredMessage.create(
            message,
            self._conversation_id,
            clock=self._clock,
            id_factory=self._id_factory,
            embedding=embedding,
        )

    async def _load(self) -> List[StoredMessage]:
        """Stored messages for the current conversation, oldest first."""
        return sort_by_timestamp(await self._store.get_messages(self._conversation_id))

    async def _current_summary(self) -> Optional[str]:
        return None

    async def get_context(self) -> ConversationContext:
        messages = await self.get_messages()
        return ConversationContext.from_messages(messages, await self._current_summary())

    async def get_context_window(self, max_tokens: int) -> ConversationContext:
        messages = await self.get_messages()
        truncated = truncate_messages(
            messages,
            max_tokens,
            keep_system=self._options.include_system_messages,
        )
        return ConversationContext.from_messages(truncated, await self._current_summary())

    async def clear(self) -> None:
        await self._store.clear(self._conversation_id)

    async def get_message_count(self) -> int:
        return len(await self._store.get_messages(self._conversation_id))

    async def get_token_count(self) -> int:
        return estimate_messages_tokens(await self.get_messages())
