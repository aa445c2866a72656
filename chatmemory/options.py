"""
Configuration for memory strategies.
"""

from dataclasses import dataclass
from typing import Optional

from .errors import MemoryConfigurationError
from .models import Clock, IdFactory
from .summarization import DEFAULT_SUMMARY_PROMPT, CONVERSATION_PLACEHOLDER


def _check_non_negative(name: str, value: Optional[float]) -> None:
    if value is not None and value < 0:
        raise MemoryConfigurationError(f"{name} must be non-negative, got {value}")


@dataclass
class MemoryOptions:
    """
    Options shared by all memory strategies.

    Attributes:
        max_messages: Maximum number of messages to keep or return
        max_tokens: Maximum estimated tokens to keep or return
        conversation_id: Conversation to bind to; generated when omitted
        include_system_messages: Keep system messages when truncating
        clock: Timestamp source in epoch milliseconds
        id_factory: Message id generator
    """
    max_messages: Optional[int] = None
    max_tokens: Optional[int] = None
    conversation_id: Optional[str] = None
    include_system_messages: bool = True
    clock: Optional[Clock] = None
    id_factory: Optional[IdFactory] = None

    def __post_init__(self):
        _check_non_negative('max_messages', self.max_messages)
        _check_non_negative('max_tokens', self.max_tokens)


@dataclass
class BufferMemoryOptions(MemoryOptions):
    max_messages: Optional[int] = 50
    max_tokens: Optional[int] = 4000

    def __post_init__(self):
        super().__post_init__()
        if self.max_messages is None or self.max_tokens is None:
            raise MemoryConfigurationError("BufferMemory requires max_messages and max_tokens")


@dataclass
class SummaryMemoryOptions(MemoryOptions):
    """
    Attributes:
        summarize_threshold: Estimated tokens above which history is compacted
        summary_prompt: Prompt template containing a `{conversation}` placeholder
        keep_recent_min: Minimum number of recent messages kept verbatim
        keep_recent_ratio: Fraction of messages kept verbatim when larger than the minimum
    """
    summarize_threshold: int = 2000
    summary_prompt: str = DEFAULT_SUMMARY_PROMPT
    keep_recent_min: int = 4
    keep_recent_ratio: float = 0.25

    def __post_init__(self):
        super().__post_init__()
        _check_non_negative('summarize_threshold', self.summarize_threshold)
        _check_non_negative('keep_recent_min', self.keep_recent_min)
        if not 0 <= self.keep_recent_ratio <= 1:
            raise MemoryConfigurationError(
                f"keep_recent_ratio must be between 0 and 1, got {self.keep_recent_ratio}"
            )
        if CONVERSATION_PLACEHOLDER not in self.summary_prompt:
            raise MemoryConfigurationError(
                f"summary_prompt must contain the {CONVERSATION_PLACEHOLDER} placeholder"
            )

    def keep_count(self, total: int) -> int:
        """Number of most recent messages that survive compaction."""
        return max(self.keep_recent_min, int(total * self.keep_recent_ratio))


@dataclass
class SummaryBufferMemoryOptions(SummaryMemoryOptions):
    """
    Attributes:
        buffer_size: Number of recent messages kept verbatim after compaction
    """
    buffer_size: int = 10

    def __post_init__(self):
        super().__post_init__()
        _check_non_negative('buffer_size', self.buffer_size)


@dataclass
class VectorMemoryOptions(MemoryOptions):
    """
    Attributes:
        top_k: Default number of search results
        min_score: Cosine similarity floor for search results
    """
    top_k: int = 5
    min_score: float = 0.5

    def __post_init__(self):
        super().__post_init__()
        _check_non_negative('top_k', self.top_k)
        if not -1 <= self.min_score <= 1:
            raise MemoryConfigurationError(f"min_score must be between -1 and 1, got {self.min_score}")
