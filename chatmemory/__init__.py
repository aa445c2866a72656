"""
ChatMemory - Conversation memory for chat-style LLM applications.

This package decides, on every turn, which part of an unbounded message history
is sent to the model under a token budget. It provides sliding-window,
summarizing, hybrid and embedding-based memory strategies over interchangeable
storage backends.
"""

from .errors import MemoryConfigurationError, StorageQuotaError
from .models import (
    Message,
    ToolCall,
    StoredMessage,
    ConversationContext,
    SearchResult,
)
from .interfaces import MemoryStore, Memory, SummarizableMemory, SearchableMemory
from .stores import InMemoryStore, SQLiteStore, RedisStore, store_from_name

# Token accounting
from .tokenizer import (
    estimate_tokens,
    estimate_message_tokens,
    estimate_messages_tokens,
    truncate_messages,
    truncate_messages_by_count,
)

# Embeddings
from .embedding import (
    EmbedFn,
    EmbeddingResult,
    BatchEmbeddingResult,
    EmbeddingsProvider,
    FunctionEmbeddings,
)
from .retrieval import cosine_similarity

# Strategies
from .options import (
    MemoryOptions,
    BufferMemoryOptions,
    SummaryMemoryOptions,
    SummaryBufferMemoryOptions,
    VectorMemoryOptions,
)
from .summarization import (
    SummarizerFn,
    DEFAULT_SUMMARY_PROMPT,
    SUMMARY_MARKER,
    format_conversation_for_summary,
    format_context_with_summary,
)
from .buffer import BufferMemory
from .summary import SummaryMemory
from .summary_buffer import SummaryBufferMemory
from .vector import VectorMemory
from .factory import create_memory

__version__ = "0.1.0"
__all__ = [
    # Errors
    "MemoryConfigurationError",
    "StorageQuotaError",
    # Models
    "Message",
    "ToolCall",
    "StoredMessage",
    "ConversationContext",
    "SearchResult",
    # Stores
    "MemoryStore",
    "InMemoryStore",
    "SQLiteStore",
    "RedisStore",
    "store_from_name",
    # Token accounting
    "estimate_tokens",
    "estimate_message_tokens",
    "estimate_messages_tokens",
    "truncate_messages",
    "truncate_messages_by_count",
    # Embeddings
    "EmbedFn",
    "EmbeddingResult",
    "BatchEmbeddingResult",
    "EmbeddingsProvider",
    "FunctionEmbeddings",
    "cosine_similarity",
    # Memory
    "Memory",
    "SummarizableMemory",
    "SearchableMemory",
    "MemoryOptions",
    "BufferMemoryOptions",
    "SummaryMemoryOptions",
    "SummaryBufferMemoryOptions",
    "VectorMemoryOptions",
    "SummarizerFn",
    "DEFAULT_SUMMARY_PROMPT",
    "SUMMARY_MARKER",
    "format_conversation_for_summary",
    "format_context_with_summary",
    "BufferMemory",
    "SummaryMemory",
    "SummaryBufferMemory",
    "VectorMemory",
    "create_memory",
]
