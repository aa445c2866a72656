"""
Summary memory: compacts old history into a rolling LLM-generated summary.
"""

import logging
from typing import List, Optional, Tuple

from .base import BaseMemory
from .errors import MemoryConfigurationError
from .interfaces import MemoryStore, SummarizableMemory
from .models import Message, StoredMessage
from .options import SummaryMemoryOptions
from .summarization import (
    SummarizerFn,
    build_summary_prompt,
    call_summarizer,
    is_summary_message,
    previous_summary_message,
    summary_message,
)

logger = logging.getLogger(__name__)

SUMMARY_KEY = 'summary'


class SummaryMemory(BaseMemory, SummarizableMemory):
    """
    Summarizes old conversation history once it grows past a token threshold.

    On compaction the most recent messages are kept verbatim (at least
    `keep_recent_min`, or `keep_recent_ratio` of the conversation, whichever is
    larger); everything older is folded, together with any existing summary,
    into a new summary stored in the conversation metadata.

    Usage:
        async def summarizer(messages, prompt):
            return await client.complete(prompt)

        memory = SummaryMemory(summarizer=summarizer)
        await memory.add(Message(role='user', content='Hello!'))
    """

    type = 'summary'

    def __init__(
        self,
        store: Optional[MemoryStore] = None,
        summarizer: Optional[SummarizerFn] = None,
        options: Optional[SummaryMemoryOptions] = None,
    ):
        super().__init__(store, options or SummaryMemoryOptions())
        self._summarizer = summarizer

    def set_summarizer(self, summarizer: SummarizerFn) -> None:
        """Set the summarizer function."""
        self._summarizer = summarizer

    async def add(self, message: Message) -> None:
        await self._store.add_message(self._new_stored(message))
        await self._check_and_summarize()

    async def add_many(self, messages: List[Message]) -> None:
        for message in messages:
            await self._store.add_message(self._new_stored(message))
        await self._check_and_summarize()

    async def get_messages(self) -> List[Message]:
        messages = [s.message for s in await self._load()]
        summary = await self.get_summary()
        if not summary:
            return messages
        return [summary_message(summary)] + [m for m in messages if not is_summary_message(m)]

    async def get_summary(self) -> Optional[str]:
        metadata = await self._store.get_metadata(self._conversation_id)
        if not metadata:
            return None
        return metadata.get(SUMMARY_KEY)

    async def _current_summary(self) -> Optional[str]:
        return await self.get_summary()

    async def summarize(self) -> str:
        """
        Compact history now, without checking the token threshold.

        Returns:
            The new summary, or an empty string if there was nothing to compact.

        Raises:
            MemoryConfigurationError: If no summarizer is set.
        """
        if self._summarizer is None:
            raise MemoryConfigurationError(
                f"No summarizer function provided for conversation '{self._conversation_id}'. "
                "Set one with set_summarizer()"
            )
        return await self._compact(await self._load())

    def _partition(self, stored: List[StoredMessage]) -> Tuple[List[StoredMessage], List[StoredMessage]]:
        """Split history into (messages to summarize, messages to keep)."""
        keep = self._options.keep_count(len(stored))
        if len(stored) <= keep:
            return [], stored
        if keep == 0:
            return stored, []
        return stored[:-keep], stored[-keep:]

    async def _should_compact(self, stored: List[StoredMessage]) -> bool:
        return await self.get_token_count() > self._options.summarize_threshold

    async def _check_and_summarize(self) -> None:
        if self._summarizer is None:
            return
        stored = await self._load()
        if await self._should_compact(stored):
            await self._compact(stored)

    async def _compact(self, stored: List[StoredMessage]) -> str:
        to_summarize, kept = self._partition(stored)
        if not to_summarize:
            return ''

        existing = await self.get_summary()
        messages = [s.message for s in to_summarize]
        if existing:
            messages.insert(0, previous_summary_message(existing))

        prompt = build_summary_prompt(self._options.summary_prompt, messages)
        summary = await call_summarizer(self._summarizer, messages, prompt)

        # Nothing is written until the summarizer has returned
        metadata = await self._store.get_metadata(self._conversation_id) or {}
        metadata[SUMMARY_KEY] = summary
        await self._store.replace_messages(self._conversation_id, kept)
        try:
            await self._store.set_metadata(self._conversation_id, metadata)
        except Exception:
            # Restore the pre-compaction history so the summary is never half-applied
            await self._store.replace_messages(self._conversation_id, stored)
            raise

        logger.debug(
            f"Summarized {len(to_summarize)} messages of conversation '{self._conversation_id}', "
            f"kept {len(kept)}"
        )
        return summary
