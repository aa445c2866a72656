"""
Token accounting for context window management.

Token counts are estimated from character length rather than produced by a
model tokenizer. Every memory strategy uses these functions, so estimates stay
consistent no matter which strategy built a context window.

Provides:
- estimate_tokens(): Heuristic token estimate for a string
- estimate_message_tokens(): Estimate for a message including overhead
- truncate_messages(): Keep the most recent messages within a token budget
- truncate_messages_by_count(): Keep the most recent N messages
"""

import math
from typing import Callable, List, Sequence, TypeVar

from .models import Message, StoredMessage

T = TypeVar('T')

# Characters per token for ordinary prose vs. long-word content (code, URLs, identifiers)
CHARS_PER_TOKEN: float = 4.0
CHARS_PER_TOKEN_DENSE: float = 3.5
DENSE_WORD_LENGTH: float = 6.0

# Formatting overhead per message and per tool call
MESSAGE_OVERHEAD: int = 4
TOOL_CALL_OVERHEAD: int = 10


# =============================================================================
# Estimation
# =============================================================================

def estimate_tokens(text: str) -> int:
    """
    Estimate the number of tokens in a string.

    Uses text length divided by an adaptive characters-per-token ratio:
    3.5 when the average word is longer than 6 characters, 4.0 otherwise.

    Args:
        text: Text to estimate.

    Returns:
        Estimated token count (0 for empty text).
    """
    if not text:
        return 0

    words = text.split()
    avg_chars_per_word = len(text) / max(len(words), 1)
    ratio = CHARS_PER_TOKEN_DENSE if avg_chars_per_word > DENSE_WORD_LENGTH else CHARS_PER_TOKEN
    return math.ceil(len(text) / ratio)


def estimate_message_tokens(message: Message) -> int:
    """
    Estimate the token cost of a single message.

    Adds a fixed per-message overhead, the optional name, and the name,
    arguments and structural overhead of every tool call.
    """
    tokens = MESSAGE_OVERHEAD
    tokens += estimate_tokens(message.content)

    if message.name:
        tokens += estimate_tokens(message.name) + 1

    if message.tool_calls:
        for call in message.tool_calls:
            tokens += estimate_tokens(call.name)
            tokens += estimate_tokens(call.arguments)
            tokens += TOOL_CALL_OVERHEAD

    return tokens


def estimate_messages_tokens(messages: Sequence[Message]) -> int:
    """Sum token estimates across messages."""
    return sum(estimate_message_tokens(m) for m in messages)


# =============================================================================
# Truncation
# =============================================================================

def _identity(message: Message) -> Message:
    return message


def _stored_message(stored: StoredMessage) -> Message:
    return stored.message


def _recent_suffix(items: Sequence[T], max_tokens: int, message_of: Callable[[T], Message]) -> List[T]:
    """Walk from newest to oldest and stop at the first item that would exceed the budget."""
    total = 0
    start = len(items)
    for i in range(len(items) - 1, -1, -1):
        cost = estimate_message_tokens(message_of(items[i]))
        if total + cost > max_tokens:
            break
        total += cost
        start = i
    return list(items[start:])


def _truncate(
    items: Sequence[T],
    max_tokens: int,
    keep_system: bool,
    message_of: Callable[[T], Message],
) -> List[T]:
    if not keep_system:
        return _recent_suffix(items, max_tokens, message_of)

    system_idx = [i for i, item in enumerate(items) if message_of(item).role == 'system']
    other_idx = [i for i, item in enumerate(items) if message_of(item).role != 'system']

    system_tokens = sum(estimate_message_tokens(message_of(items[i])) for i in system_idx)
    remaining = max_tokens - system_tokens

    if remaining <= 0:
        # System messages alone exhaust the budget, so they compete like any other message
        return _recent_suffix(items, max_tokens, message_of)

    kept_other = _recent_suffix(other_idx, remaining, lambda i: message_of(items[i]))
    kept = set(system_idx) | set(kept_other)
    return [item for i, item in enumerate(items) if i in kept]


def _truncate_by_count(
    items: Sequence[T],
    max_messages: int,
    keep_system: bool,
    message_of: Callable[[T], Message],
) -> List[T]:
    if len(items) <= max_messages:
        return list(items)
    if max_messages <= 0:
        return []

    if not keep_system:
        return list(items[-max_messages:])

    system_idx = [i for i, item in enumerate(items) if message_of(item).role == 'system']
    other_idx = [i for i, item in enumerate(items) if message_of(item).role != 'system']

    remaining_slots = max_messages - len(system_idx)
    if remaining_slots <= 0:
        kept = set(system_idx[-max_messages:])
    else:
        kept = set(system_idx) | set(other_idx[-remaining_slots:])
    return [item for i, item in enumerate(items) if i in kept]


def truncate_messages(
    messages: Sequence[Message],
    max_tokens: int,
    keep_system: bool = True,
) -> List[Message]:
    """
    Keep the most recent messages that fit within a token budget.

    Non-system messages are walked from newest to oldest and the walk stops at
    the first message that no longer fits, so the result is a contiguous
    suffix. With `keep_system`, system messages are costed first and kept
    unconditionally unless they alone exhaust the budget, in which case all
    messages are truncated together.

    Args:
        messages: Messages ordered oldest first.
        max_tokens: Token budget.
        keep_system: Keep system messages outside the recency walk.

    Returns:
        The kept messages in their original relative order.
    """
    return _truncate(messages, max_tokens, keep_system, _identity)


def truncate_messages_by_count(
    messages: Sequence[Message],
    max_messages: int,
    keep_system: bool = True,
) -> List[Message]:
    """
    Keep the most recent `max_messages` messages.

    With `keep_system`, system messages are kept first and the remaining slots
    go to the newest non-system messages.
    """
    return _truncate_by_count(messages, max_messages, keep_system, _identity)


def truncate_stored_messages(
    stored: Sequence[StoredMessage],
    max_tokens: int,
    keep_system: bool = True,
) -> List[StoredMessage]:
    """`truncate_messages` over stored messages, keeping ids, timestamps and embeddings."""
    return _truncate(stored, max_tokens, keep_system, _stored_message)


def truncate_stored_by_count(
    stored: Sequence[StoredMessage],
    max_messages: int,
    keep_system: bool = True,
) -> List[StoredMessage]:
    """`truncate_messages_by_count` over stored messages."""
    return _truncate_by_count(stored, max_messages, keep_system, _stored_message)
