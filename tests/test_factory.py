import pytest

from chatmemory import (
    create_memory,
    BufferMemory,
    SummaryMemory,
    SummaryBufferMemory,
    VectorMemory,
    BufferMemoryOptions,
    SummaryBufferMemoryOptions,
    VectorMemoryOptions,
    FunctionEmbeddings,
    InMemoryStore,
    Message,
    MemoryConfigurationError,
)

pytest_plugins = ('pytest_asyncio',)


class TestCreateMemory:
    def test_buffer(self):
        memory = create_memory('buffer', options=BufferMemoryOptions(max_messages=5))
        assert isinstance(memory, BufferMemory)
        assert memory.options.max_messages == 5

    def test_summary(self):
        memory = create_memory('summary', summarizer=lambda messages, prompt: 'recap')
        assert isinstance(memory, SummaryMemory)
        assert memory.type == 'summary'

    def test_summary_buffer(self):
        memory = create_memory('summary-buffer', options=SummaryBufferMemoryOptions(buffer_size=2))
        assert isinstance(memory, SummaryBufferMemory)
        assert memory.get_buffer_size() == 2

    def test_vector(self):
        embeddings = FunctionEmbeddings(lambda texts: [[1.0] for _ in texts])
        memory = create_memory('vector', embeddings=embeddings)
        assert isinstance(memory, VectorMemory)
        assert memory.embeddings is embeddings

    def test_vector_requires_embeddings(self):
        with pytest.raises(MemoryConfigurationError):
            create_memory('vector')

    def test_unknown_kind(self):
        with pytest.raises(ValueError, match="Unknown memory type"):
            create_memory('episodic')

    def test_mismatched_options(self):
        with pytest.raises(ValueError, match="expects BufferMemoryOptions"):
            create_memory('buffer', options=VectorMemoryOptions())

    @pytest.mark.asyncio
    async def test_strategies_share_a_store(self):
        store = InMemoryStore()
        writer = create_memory('buffer', store=store, options=BufferMemoryOptions(conversation_id='shared'))
        reader = create_memory('buffer', store=store, options=BufferMemoryOptions(conversation_id='shared'))

        await writer.add(Message(role='user', content='hello'))
        assert [m.content for m in await reader.get_messages()] == ['hello']
