"""
Vector memory: semantic retrieval over embedded conversation history.
"""

import logging
from typing import Dict, List, Optional

from .base import BaseMemory
from .embedding import EmbeddingsProvider, as_vector, validate_vectors
from .errors import MemoryConfigurationError
from .interfaces import MemoryStore, SearchableMemory
from .models import Message, SearchResult, StoredMessage
from .options import VectorMemoryOptions
from .retrieval import rank_by_similarity
from .tokenizer import truncate_messages, truncate_messages_by_count

logger = logging.getLogger(__name__)


class VectorMemory(BaseMemory, SearchableMemory):
    """
    Stores an embedding with every message and retrieves by cosine similarity.

    Storage is unbounded; `max_messages` and `max_tokens`, when set, only bound
    what `get_messages` and `get_context` return. Search results with equal
    scores are ordered newest first.

    Usage:
        memory = VectorMemory(embeddings, options=VectorMemoryOptions(top_k=5, min_score=0.7))
        await memory.add(Message(role='user', content='I love pizza'))
        results = await memory.search('What food do I like?')
    """

    type = 'vector'

    def __init__(
        self,
        embeddings: EmbeddingsProvider,
        store: Optional[MemoryStore] = None,
        options: Optional[VectorMemoryOptions] = None,
    ):
        if embeddings is None:
            raise MemoryConfigurationError("VectorMemory requires an embeddings provider")
        super().__init__(store, options or VectorMemoryOptions())
        self._embeddings = embeddings
        # Embedding dimension per conversation, learned from the first vector seen
        self._dimensions: Dict[str, int] = {}

    @property
    def embeddings(self) -> EmbeddingsProvider:
        return self._embeddings

    async def _expected_dimension(self) -> Optional[int]:
        if self._conversation_id not in self._dimensions:
            for stored in await self._store.get_messages(self._conversation_id):
                if stored.embedding:
                    self._dimensions[self._conversation_id] = len(stored.embedding)
                    break
        return self._dimensions.get(self._conversation_id)

    async def _check_dimensions(self, vectors: List[List[float]]) -> None:
        expected = await self._expected_dimension()
        try:
            validate_vectors(vectors, expected_dim=expected)
        except MemoryConfigurationError as e:
            raise MemoryConfigurationError(
                f"Embedding mismatch in conversation '{self._conversation_id}': {e}"
            ) from e
        if vectors and expected is None:
            self._dimensions[self._conversation_id] = len(vectors[0])

    async def add(self, message: Message) -> None:
        result = await self._embeddings.embed(message.content)
        vector = as_vector(result.vector)
        await self._check_dimensions([vector])
        await self._store.add_message(self._new_stored(message, embedding=vector))

    async def add_many(self, messages: List[Message]) -> None:
        if not messages:
            return

        # One batched embedding call for the whole set
        batch = await self._embeddings.embed_many([m.content for m in messages])
        if len(batch.items) != len(messages):
            raise MemoryConfigurationError(
                f"Embeddings provider returned {len(batch.items)} vectors for {len(messages)} messages."
            )
        vectors = [as_vector(item.vector) for item in batch.items]
        await self._check_dimensions(vectors)

        for message, vector in zip(messages, vectors):
            await self._store.add_message(self._new_stored(message, embedding=vector))

    async def get_messages(self) -> List[Message]:
        messages = [s.message for s in await self._load()]
        keep_system = self._options.include_system_messages
        if self._options.max_messages is not None:
            messages = truncate_messages_by_count(messages, self._options.max_messages, keep_system=keep_system)
        if self._options.max_tokens is not None:
            messages = truncate_messages(messages, self._options.max_tokens, keep_system=keep_system)
        return messages

    async def clear(self) -> None:
        await super().clear()
        self._dimensions.pop(self._conversation_id, None)

    async def search(self, query: str, top_k: Optional[int] = None) -> List[SearchResult]:
        """
        Find the stored messages most similar to `query`.

        Returns at most `top_k` results (default: the configured `top_k`),
        each scoring at least `min_score`, sorted by descending score.
        """
        k = self._options.top_k if top_k is None else top_k
        result = await self._embeddings.embed(query)
        stored = await self._load()
        return rank_by_similarity(stored, as_vector(result.vector), self._options.min_score, k)

    async def get_relevant_context(self, query: str, top_k: Optional[int] = None) -> List[Message]:
        """Messages most similar to `query`, in conversation order."""
        results = await self.search(query, top_k)
        results.sort(key=lambda r: r.message.timestamp)
        return [r.message.message for r in results]

    async def build_context(self, query: str, recent_count: int = 5, relevant_count: int = 3) -> List[Message]:
        """
        Combine relevant older history with the most recent messages.

        Returns `[...relevant, ...recent]`: up to `relevant_count` messages
        similar to `query` that are not already among the last `recent_count`
        messages, in conversation order, followed by the recent messages.
        """
        stored = await self._load()
        recent: List[StoredMessage] = stored[-recent_count:] if recent_count > 0 else []
        recent_ids = {s.id for s in recent}

        relevant: List[StoredMessage] = []
        if relevant_count > 0:
            results = await self.search(query, relevant_count + recent_count)
            relevant = [r.message for r in results if r.message.id not in recent_ids][:relevant_count]
            relevant.sort(key=lambda s: s.timestamp)

        logger.debug(
            f"Built context for conversation '{self._conversation_id}' with "
            f"{len(relevant)} relevant and {len(recent)} recent messages"
        )
        return [s.message for s in relevant] + [s.message for s in recent]
