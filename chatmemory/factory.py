"""
Name-based construction of memory strategies.
"""

from typing import Dict, Optional

from .buffer import BufferMemory
from .embedding import EmbeddingsProvider
from .interfaces import Memory, MemoryStore
from .options import (
    MemoryOptions,
    BufferMemoryOptions,
    SummaryMemoryOptions,
    SummaryBufferMemoryOptions,
    VectorMemoryOptions,
)
from .summarization import SummarizerFn
from .summary import SummaryMemory
from .summary_buffer import SummaryBufferMemory
from .vector import VectorMemory

_MEMORY_TYPES: Dict[str, type] = {
    'buffer': BufferMemory,
    'summary': SummaryMemory,
    'summary-buffer': SummaryBufferMemory,
    'vector': VectorMemory,
}

_OPTIONS_TYPES: Dict[str, type] = {
    'buffer': BufferMemoryOptions,
    'summary': SummaryMemoryOptions,
    'summary-buffer': SummaryBufferMemoryOptions,
    'vector': VectorMemoryOptions,
}


def create_memory(
    kind: str,
    store: Optional[MemoryStore] = None,
    options: Optional[MemoryOptions] = None,
    summarizer: Optional[SummarizerFn] = None,
    embeddings: Optional[EmbeddingsProvider] = None,
) -> Memory:
    """
    Create a memory strategy by name.

    Args:
        kind: Memory type ('buffer', 'summary', 'summary-buffer', 'vector').
        store: Store shared with other strategies; a new InMemoryStore if None.
        options: Options for the strategy; must be the matching options class.
        summarizer: Summarizer for 'summary' and 'summary-buffer'.
        embeddings: Embeddings provider, required for 'vector'.

    Returns:
        Memory instance.

    Raises:
        ValueError: If the memory type is unknown or the options class does not match.
        MemoryConfigurationError: If 'vector' is requested without embeddings.
    """
    if kind not in _MEMORY_TYPES:
        raise ValueError(f"Unknown memory type: {kind}. Available: {list(_MEMORY_TYPES.keys())}")

    if options is not None and not isinstance(options, _OPTIONS_TYPES[kind]):
        raise ValueError(
            f"Memory type '{kind}' expects {_OPTIONS_TYPES[kind].__name__}, got {type(options).__name__}"
        )

    if kind == 'buffer':
        return BufferMemory(store=store, options=options)
    if kind == 'vector':
        return VectorMemory(embeddings, store=store, options=options)
    return _MEMORY_TYPES[kind](store=store, summarizer=summarizer, options=options)
