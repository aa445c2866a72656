"""
Data models for conversation memory.
"""

import copy
import time
import uuid
from dataclasses import dataclass, asdict, field
from typing import Dict, Any, List, Optional, Tuple, Callable, Sequence

from .errors import MemoryConfigurationError

VALID_ROLES = ('system', 'user', 'assistant', 'tool')

# Clock returns epoch milliseconds; IdFactory returns a unique message id.
Clock = Callable[[], float]
IdFactory = Callable[[], str]


def default_clock() -> float:
    """Current time in epoch milliseconds."""
    return time.time() * 1000


def default_id_factory() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class ToolCall:
    """A function call requested by the assistant."""
    id: str
    name: str
    arguments: str = ''
    type: str = 'function'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.type,
            'function': {'name': self.name, 'arguments': self.arguments},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ToolCall':
        function = data.get('function', {})
        return cls(
            id=data.get('id', ''),
            name=function.get('name', ''),
            arguments=function.get('arguments', ''),
            type=data.get('type', 'function'),
        )


@dataclass(frozen=True)
class Message:
    """
    A single chat message.

    Attributes:
        role: One of 'system', 'user', 'assistant', 'tool'
        content: The message text
        name: Optional participant name
        tool_calls: Optional tool calls attached to an assistant message
    """
    role: str
    content: str = ''
    name: Optional[str] = None
    tool_calls: Optional[Tuple[ToolCall, ...]] = None

    def __post_init__(self):
        if self.role not in VALID_ROLES:
            raise MemoryConfigurationError(
                f"Invalid message role '{self.role}'. Expected one of {list(VALID_ROLES)}."
            )
        if self.content is None:
            object.__setattr__(self, 'content', '')
        if self.tool_calls is not None and not isinstance(self.tool_calls, tuple):
            object.__setattr__(self, 'tool_calls', tuple(self.tool_calls))

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'role': self.role, 'content': self.content}
        if self.name is not None:
            result['name'] = self.name
        if self.tool_calls:
            result['tool_calls'] = [call.to_dict() for call in self.tool_calls]
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Message':
        tool_calls = data.get('tool_calls')
        return cls(
            role=data['role'],
            content=data.get('content') or '',
            name=data.get('name'),
            tool_calls=tuple(ToolCall.from_dict(c) for c in tool_calls) if tool_calls else None,
        )


@dataclass
class StoredMessage:
    """
    A message committed to a store.

    Attributes:
        id: Unique identifier for the stored message
        message: The wrapped message
        timestamp: Creation time in epoch milliseconds
        conversation_id: Owning conversation
        token_count: Optional precomputed token estimate
        embedding: Optional embedding vector
        metadata: Optional free-form metadata
    """
    id: str
    message: Message
    timestamp: float
    conversation_id: str
    token_count: Optional[int] = None
    embedding: Optional[List[float]] = None
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def create(
        cls,
        message: Message,
        conversation_id: str,
        clock: Clock = default_clock,
        id_factory: IdFactory = default_id_factory,
        embedding: Optional[List[float]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> 'StoredMessage':
        """Wrap a message for storage, stamping id, timestamp and token count."""
        from .tokenizer import estimate_message_tokens

        return cls(
            id=id_factory(),
            message=message,
            timestamp=clock(),
            conversation_id=conversation_id,
            token_count=estimate_message_tokens(message),
            embedding=embedding,
            metadata=metadata,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        result = {
            'id': self.id,
            'message': self.message.to_dict(),
            'timestamp': self.timestamp,
            'conversation_id': self.conversation_id,
            'token_count': self.token_count,
            'embedding': self.embedding,
            'metadata': copy.deepcopy(self.metadata),
        }
        # Remove None values for cleaner JSON
        return {k: v for k, v in result.items() if v is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StoredMessage':
        return cls(
            id=data['id'],
            message=Message.from_dict(data['message']),
            timestamp=data['timestamp'],
            conversation_id=data['conversation_id'],
            token_count=data.get('token_count'),
            embedding=data.get('embedding'),
            metadata=copy.deepcopy(data.get('metadata')),
        )


@dataclass
class ConversationContext:
    """
    The context window handed to the model.

    Attributes:
        messages: Ordered messages to send
        summary: Rolling summary of compacted history, if any
        token_count: Estimated tokens of `messages`
        message_count: Number of entries in `messages`
    """
    messages: List[Message] = field(default_factory=list)
    summary: Optional[str] = None
    token_count: int = 0
    message_count: int = 0

    @classmethod
    def from_messages(cls, messages: List[Message], summary: Optional[str] = None) -> 'ConversationContext':
        from .tokenizer import estimate_messages_tokens

        return cls(
            messages=list(messages),
            summary=summary or None,
            token_count=estimate_messages_tokens(messages),
            message_count=len(messages),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result['messages'] = [m.to_dict() for m in self.messages]
        return result


@dataclass
class SearchResult:
    """A stored message with its similarity score for a query."""
    message: StoredMessage
    score: float


def sort_by_timestamp(stored: Sequence[StoredMessage]) -> List[StoredMessage]:
    """
    Order stored messages by creation time.

    The sort is stable, so messages sharing a timestamp keep the store's order.
    """
    return sorted(stored, key=lambda s: s.timestamp)
