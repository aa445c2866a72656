"""
Tests for embedding-backed vector memory.
"""

import itertools
import numpy as np
import pytest

from chatmemory.embedding import FunctionEmbeddings, EmbeddingResult, BatchEmbeddingResult
from chatmemory.errors import MemoryConfigurationError
from chatmemory.models import Message
from chatmemory.options import VectorMemoryOptions
from chatmemory.stores import InMemoryStore
from chatmemory.vector import VectorMemory

pytest_plugins = ('pytest_asyncio',)


class KeywordEmbedder:
    """Maps texts onto orthogonal topic axes: pizza, weather, everything else."""

    def __init__(self):
        self.calls = []
        self.dimensions = 3

    def __call__(self, texts):
        self.calls.append(list(texts))
        return [self._vector(t) for t in texts]

    def _vector(self, text):
        vector = [0.0] * self.dimensions
        lowered = text.lower()
        if 'pizza' in lowered:
            vector[0] = 1.0
        elif 'weather' in lowered:
            vector[1] = 1.0
        else:
            vector[-1] = 1.0
        return vector


def counting_clock():
    counter = itertools.count(1)
    return lambda: float(next(counter))


def make_options(**kwargs):
    kwargs.setdefault('conversation_id', 'conv')
    kwargs.setdefault('clock', counting_clock())
    return VectorMemoryOptions(**kwargs)


def user(content):
    return Message(role='user', content=content)


@pytest.fixture
def embedder():
    return KeywordEmbedder()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def memory(embedder, store):
    return VectorMemory(FunctionEmbeddings(embedder), store=store, options=make_options())


class TestVectorMemory:

    @pytest.mark.asyncio
    async def test_search_finds_related_messages(self, memory):
        await memory.add(user('I love pizza'))
        await memory.add(user('The weather is nice today'))
        await memory.add(user('Pizza with mushrooms is the best'))

        results = await memory.search('What pizza do I like?')

        assert [r.message.message.content for r in results] == [
            'Pizza with mushrooms is the best',
            'I love pizza',
        ]
        assert all(r.score == pytest.approx(1.0) for r in results)

    @pytest.mark.asyncio
    async def test_identical_text_scores_one(self, memory):
        await memory.add(user('The weather is nice today'))
        results = await memory.search('The weather is nice today')
        assert results[0].score == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_min_score_filters_unrelated(self, memory):
        await memory.add(user('I love pizza'))
        await memory.add(user('Something else entirely'))

        results = await memory.search('weather forecast')
        assert results == []

    @pytest.mark.asyncio
    async def test_top_k(self, memory):
        for i in range(5):
            await memory.add(user(f'pizza number {i}'))

        assert len(await memory.search('pizza')) == 5
        assert len(await memory.search('pizza', top_k=2)) == 2
        assert await memory.search('pizza', top_k=0) == []

    @pytest.mark.asyncio
    async def test_results_sorted_by_descending_score(self, embedder, store):
        memory = VectorMemory(FunctionEmbeddings(embedder), store=store, options=make_options(min_score=-1.0))
        await memory.add(user('pizza'))
        await memory.add(user('weather'))

        results = await memory.search('pizza')
        scores = [r.score for r in results]
        assert scores == sorted(scores, reverse=True)
        assert results[0].message.message.content == 'pizza'

    @pytest.mark.asyncio
    async def test_embeddings_are_persisted(self, memory, store):
        await memory.add(user('I love pizza'))
        stored = await store.get_messages('conv')
        assert stored[0].embedding == [1.0, 0.0, 0.0]

    @pytest.mark.asyncio
    async def test_add_many_uses_one_batch(self, memory, embedder):
        await memory.add_many([user('pizza'), user('weather'), user('other')])

        assert embedder.calls == [['pizza', 'weather', 'other']]
        assert await memory.get_message_count() == 3

    @pytest.mark.asyncio
    async def test_add_many_empty(self, memory, embedder):
        await memory.add_many([])
        assert embedder.calls == []

    @pytest.mark.asyncio
    async def test_get_relevant_context_in_conversation_order(self, memory):
        await memory.add(user('I love pizza'))
        await memory.add(user('The weather is nice today'))
        await memory.add(user('Pizza with mushrooms is the best'))

        messages = await memory.get_relevant_context('pizza')
        assert [m.content for m in messages] == ['I love pizza', 'Pizza with mushrooms is the best']

    @pytest.mark.asyncio
    async def test_build_context(self, memory):
        await memory.add(user('I love pizza'))
        await memory.add(user('The weather is nice today'))
        for i in range(3):
            await memory.add(user(f'Small talk {i}'))

        messages = await memory.build_context('pizza', recent_count=2, relevant_count=3)
        assert [m.content for m in messages] == ['I love pizza', 'Small talk 1', 'Small talk 2']

    @pytest.mark.asyncio
    async def test_build_context_does_not_repeat_recent(self, memory):
        await memory.add(user('Small talk'))
        await memory.add(user('I love pizza'))

        messages = await memory.build_context('pizza', recent_count=1, relevant_count=3)
        assert [m.content for m in messages] == ['I love pizza']

    @pytest.mark.asyncio
    async def test_build_context_without_recent(self, memory):
        await memory.add(user('I love pizza'))
        await memory.add(user('Small talk'))

        messages = await memory.build_context('pizza', recent_count=0, relevant_count=1)
        assert [m.content for m in messages] == ['I love pizza']

    @pytest.mark.asyncio
    async def test_storage_is_unbounded_but_reads_are_capped(self, embedder):
        memory = VectorMemory(FunctionEmbeddings(embedder), options=make_options(max_messages=3))
        for i in range(10):
            await memory.add(user(f'pizza {i}'))

        assert await memory.get_message_count() == 10
        messages = await memory.get_messages()
        assert [m.content for m in messages] == ['pizza 7', 'pizza 8', 'pizza 9']
        assert len(await memory.search('pizza', top_k=10)) == 10

    @pytest.mark.asyncio
    async def test_dimension_mismatch(self, memory, embedder):
        await memory.add(user('I love pizza'))
        embedder.dimensions = 2

        with pytest.raises(MemoryConfigurationError, match="Embedding mismatch in conversation 'conv'"):
            await memory.add(user('weather'))
        assert await memory.get_message_count() == 1

    @pytest.mark.asyncio
    async def test_clear_resets_dimension(self, memory, embedder):
        await memory.add(user('I love pizza'))
        await memory.clear()
        embedder.dimensions = 2

        await memory.add(user('weather'))
        assert await memory.get_message_count() == 1

    @pytest.mark.asyncio
    async def test_failing_embedder_adds_nothing(self, store):
        def failing(texts):
            raise RuntimeError("embedding service down")

        memory = VectorMemory(FunctionEmbeddings(failing), store=store, options=make_options())
        with pytest.raises(RuntimeError, match="embedding service down"):
            await memory.add(user('hello'))
        assert await store.get_messages('conv') == []

    @pytest.mark.asyncio
    async def test_context_window(self, memory):
        for i in range(5):
            await memory.add(user(f'pizza {i}'))

        context = await memory.get_context()
        assert context.message_count == 5
        assert context.summary is None

    @pytest.mark.asyncio
    async def test_provider_returning_numpy_scalars(self, store):
        class Float32Provider:
            name = 'float32'

            async def embed(self, text):
                return EmbeddingResult(text=text, vector=[np.float32(1.0), np.float32(0.0)])

            async def embed_many(self, texts):
                return BatchEmbeddingResult(items=[await self.embed(t) for t in texts], model='f32')

        memory = VectorMemory(Float32Provider(), store=store, options=make_options())
        await memory.add(user('I love pizza'))
        await memory.add_many([user('More pizza')])

        stored = await store.get_messages('conv')
        assert all(type(x) is float for s in stored for x in s.embedding)
        results = await memory.search('pizza')
        assert len(results) == 2

    def test_requires_embeddings(self):
        with pytest.raises(MemoryConfigurationError, match="requires an embeddings provider"):
            VectorMemory(None)

    def test_min_score_range(self):
        with pytest.raises(MemoryConfigurationError, match="min_score"):
            VectorMemoryOptions(min_score=2.0)
