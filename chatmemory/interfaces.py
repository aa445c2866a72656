"""
Abstract interfaces for message stores and memory strategies.
"""

from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional

from .models import Message, StoredMessage, ConversationContext, SearchResult


class MemoryStore(ABC):
    """
    Abstract base class for conversation message storage.

    Stores are read-modify-write at conversation granularity. Concurrent writers
    to the same conversation must be serialized by the caller.
    """

    @abstractmethod
    async def get_messages(self, conversation_id: str) -> List[StoredMessage]:
        """
        Get all messages for a conversation.

        Args:
            conversation_id: Unique identifier for the conversation

        Returns:
            Stored messages. Callers must not rely on insertion order and
            should sort by timestamp.
        """
        pass

    @abstractmethod
    async def add_message(self, message: StoredMessage) -> None:
        """
        Add a message to its conversation.

        Args:
            message: Stored message; its conversation_id selects the conversation
        """
        pass

    @abstractmethod
    async def update_message(self, message_id: str, updates: Dict[str, Any]) -> None:
        """
        Update fields of an existing message.

        Args:
            message_id: Identifier of the message, searched across conversations
            updates: StoredMessage field names mapped to new values

        Raises:
            ValueError: If no message has this id
        """
        pass

    @abstractmethod
    async def delete_message(self, message_id: str) -> None:
        """
        Delete a single message.

        Args:
            message_id: Identifier of the message, searched across conversations

        Raises:
            ValueError: If no message has this id
        """
        pass

    @abstractmethod
    async def clear(self, conversation_id: str) -> None:
        """Delete all messages and metadata for a conversation."""
        pass

    @abstractmethod
    async def get_metadata(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        """Get conversation metadata, or None if none was set."""
        pass

    @abstractmethod
    async def set_metadata(self, conversation_id: str, metadata: Dict[str, Any]) -> None:
        """Replace conversation metadata."""
        pass

    async def replace_messages(self, conversation_id: str, messages: List[StoredMessage]) -> None:
        """
        Rewrite a conversation's messages, keeping its metadata.

        Backends that persist the full message array should override this with
        a single write.
        """
        metadata = await self.get_metadata(conversation_id)
        await self.clear(conversation_id)
        if metadata is not None:
            await self.set_metadata(conversation_id, metadata)
        for message in messages:
            await self.add_message(message)


class Memory(ABC):
    """Abstract base class for memory strategies."""

    type: str = ''

    @property
    @abstractmethod
    def conversation_id(self) -> str:
        """Identifier of the conversation this memory reads and writes."""
        ...

    @abstractmethod
    async def add(self, message: Message) -> None:
        """Add a message to memory."""
        ...

    @abstractmethod
    async def add_many(self, messages: List[Message]) -> None:
        """Add multiple messages at once."""
        ...

    @abstractmethod
    async def get_messages(self) -> List[Message]:
        """Get messages formatted for the model."""
        ...

    @abstractmethod
    async def get_context(self) -> ConversationContext:
        """Get the full context including summary and token accounting."""
        ...

    @abstractmethod
    async def get_context_window(self, max_tokens: int) -> ConversationContext:
        """Get a context limited to `max_tokens` estimated tokens."""
        ...

    @abstractmethod
    async def clear(self) -> None:
        """Clear the conversation."""
        ...

    @abstractmethod
    async def get_message_count(self) -> int:
        """Number of stored messages for the conversation."""
        ...

    @abstractmethod
    async def get_token_count(self) -> int:
        """Estimated tokens of `get_messages()`."""
        ...


class SummarizableMemory(Memory):
    """Memory that compacts history into a rolling summary."""

    @abstractmethod
    async def get_summary(self) -> Optional[str]:
        """Current summary, or None if nothing was summarized yet."""
        ...

    @abstractmethod
    async def summarize(self) -> str:
        """Compact history now, regardless of the threshold."""
        ...


class SearchableMemory(Memory):
    """Memory that answers semantic similarity queries."""

    @abstractmethod
    async def search(self, query: str, top_k: Optional[int] = None) -> List[SearchResult]:
        """Search for messages similar to `query`."""
        ...
