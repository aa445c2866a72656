"""
Summary-buffer memory: recent messages verbatim plus a summary of older history.
"""

from typing import List, Optional, Tuple

from .interfaces import MemoryStore
from .models import Message, StoredMessage
from .options import SummaryBufferMemoryOptions
from .summarization import SummarizerFn, format_context_with_summary, is_summary_message
from .summary import SummaryMemory


class SummaryBufferMemory(SummaryMemory):
    """
    Keeps the last `buffer_size` messages intact and summarizes everything older.

    The token threshold decides when compaction runs, `buffer_size` decides
    what survives it. System messages older than the buffer are preserved
    alongside the summary instead of being folded into it.

    Usage:
        memory = SummaryBufferMemory(
            summarizer=summarizer,
            options=SummaryBufferMemoryOptions(buffer_size=10, summarize_threshold=2000),
        )
    """

    type = 'summary-buffer'

    def __init__(
        self,
        store: Optional[MemoryStore] = None,
        summarizer: Optional[SummarizerFn] = None,
        options: Optional[SummaryBufferMemoryOptions] = None,
    ):
        super().__init__(store, summarizer, options or SummaryBufferMemoryOptions())

    def get_buffer_size(self) -> int:
        return self._options.buffer_size

    def _split_buffer(self, items: list) -> Tuple[list, list]:
        size = self._options.buffer_size
        if size <= 0:
            return list(items), []
        return list(items[:-size]), list(items[-size:])

    async def get_messages(self) -> List[Message]:
        messages = [s.message for s in await self._load()]
        summary = await self.get_summary()
        if not summary:
            return messages

        older, buffer = self._split_buffer(messages)
        system_messages = [m for m in older if m.role == 'system' and not is_summary_message(m)]
        return format_context_with_summary(system_messages + buffer, summary)

    def _partition(self, stored: List[StoredMessage]) -> Tuple[List[StoredMessage], List[StoredMessage]]:
        if len(stored) <= self._options.buffer_size:
            return [], stored

        older, buffer = self._split_buffer(stored)
        to_summarize = [s for s in older if s.message.role != 'system']
        system_messages = [s for s in older if s.message.role == 'system' and not is_summary_message(s.message)]
        return to_summarize, system_messages + buffer

    async def _should_compact(self, stored: List[StoredMessage]) -> bool:
        # Only summarize once there is history beyond the buffer
        if len(stored) <= self._options.buffer_size:
            return False
        return await super()._should_compact(stored)
