"""
Tests for the sliding-window buffer memory.
"""

import itertools
import pytest

from chatmemory.buffer import BufferMemory
from chatmemory.errors import MemoryConfigurationError
from chatmemory.models import Message
from chatmemory.options import BufferMemoryOptions
from chatmemory.stores import InMemoryStore
from chatmemory.tokenizer import estimate_message_tokens, estimate_messages_tokens

pytest_plugins = ('pytest_asyncio',)


def counting_clock():
    counter = itertools.count(1)
    return lambda: float(next(counter))


def make_options(**kwargs):
    kwargs.setdefault('conversation_id', 'conv')
    kwargs.setdefault('clock', counting_clock())
    return BufferMemoryOptions(**kwargs)


def user(i):
    return Message(role='user', content=f'Message {i}')


class TestBufferMemory:

    @pytest.mark.asyncio
    async def test_keeps_last_max_messages(self):
        memory = BufferMemory(options=make_options(max_messages=5))
        for i in range(10):
            await memory.add(user(i))

        messages = await memory.get_messages()
        assert [m.content for m in messages] == [f'Message {i}' for i in range(5, 10)]
        assert await memory.get_message_count() == 5

    @pytest.mark.asyncio
    async def test_alternating_roles_end_with_latest(self):
        memory = BufferMemory(options=make_options(max_messages=5))
        for i in range(10):
            role = 'user' if i % 2 == 0 else 'assistant'
            await memory.add(Message(role=role, content=f'Turn {i}'))

        messages = await memory.get_messages()
        assert len(messages) <= 5
        assert messages[-1].content == 'Turn 9'

    @pytest.mark.asyncio
    async def test_round_trip_preserves_role_and_content(self):
        memory = BufferMemory(options=make_options())
        await memory.add(Message(role='assistant', content='Stored as written'))

        messages = await memory.get_messages()
        assert messages[0].role == 'assistant'
        assert messages[0].content == 'Stored as written'

    @pytest.mark.asyncio
    async def test_store_is_trimmed_on_write(self):
        store = InMemoryStore()
        memory = BufferMemory(store=store, options=make_options(max_messages=3))
        for i in range(6):
            await memory.add(user(i))

        assert len(await store.get_messages('conv')) == 3

    @pytest.mark.asyncio
    async def test_token_budget(self):
        cost = estimate_message_tokens(user(0))
        memory = BufferMemory(options=make_options(max_messages=100, max_tokens=cost * 3))
        for i in range(10):
            await memory.add(user(i))

        messages = await memory.get_messages()
        assert [m.content for m in messages] == ['Message 7', 'Message 8', 'Message 9']
        assert await memory.get_token_count() <= cost * 3

    @pytest.mark.asyncio
    async def test_system_messages_survive_trimming(self):
        memory = BufferMemory(options=make_options(max_messages=3))
        await memory.add(Message(role='system', content='You are helpful.'))
        for i in range(6):
            await memory.add(user(i))

        messages = await memory.get_messages()
        assert messages[0].role == 'system'
        assert [m.content for m in messages[1:]] == ['Message 4', 'Message 5']

    @pytest.mark.asyncio
    async def test_system_messages_dropped_when_not_included(self):
        memory = BufferMemory(options=make_options(max_messages=3, include_system_messages=False))
        await memory.add(Message(role='system', content='You are helpful.'))
        for i in range(6):
            await memory.add(user(i))

        messages = await memory.get_messages()
        assert all(m.role == 'user' for m in messages)
        assert len(messages) == 3

    @pytest.mark.asyncio
    async def test_add_many_trims_once(self):
        memory = BufferMemory(options=make_options(max_messages=4))
        await memory.add_many([user(i) for i in range(8)])

        messages = await memory.get_messages()
        assert [m.content for m in messages] == [f'Message {i}' for i in range(4, 8)]

    @pytest.mark.asyncio
    async def test_get_context(self):
        memory = BufferMemory(options=make_options())
        await memory.add_many([user(0), Message(role='assistant', content='Hi there')])

        context = await memory.get_context()
        assert context.message_count == 2
        assert context.summary is None
        assert context.token_count == estimate_messages_tokens(context.messages)

    @pytest.mark.asyncio
    async def test_get_context_window(self):
        memory = BufferMemory(options=make_options())
        for i in range(10):
            await memory.add(user(i))

        budget = estimate_message_tokens(user(0)) * 2
        context = await memory.get_context_window(budget)
        assert [m.content for m in context.messages] == ['Message 8', 'Message 9']
        assert context.token_count <= budget

    @pytest.mark.asyncio
    async def test_conversation_switching(self):
        store = InMemoryStore()
        memory = BufferMemory(store=store, options=make_options())
        await memory.add(user(1))

        memory.conversation_id = 'other'
        assert await memory.get_messages() == []
        await memory.add(user(2))

        memory.conversation_id = 'conv'
        assert [m.content for m in await memory.get_messages()] == ['Message 1']

    @pytest.mark.asyncio
    async def test_clear(self):
        memory = BufferMemory(options=make_options())
        await memory.add(user(0))
        await memory.clear()
        assert await memory.get_message_count() == 0

    @pytest.mark.asyncio
    async def test_stored_ids_survive_trimming(self):
        ids = (f'id-{i}' for i in itertools.count())
        store = InMemoryStore()
        memory = BufferMemory(store=store, options=make_options(max_messages=2, id_factory=lambda: next(ids)))
        for i in range(4):
            await memory.add(user(i))

        assert [s.id for s in await store.get_messages('conv')] == ['id-2', 'id-3']

    def test_generated_conversation_id(self):
        memory = BufferMemory(options=BufferMemoryOptions())
        assert memory.conversation_id
        assert memory.type == 'buffer'

    def test_limits_are_required(self):
        with pytest.raises(MemoryConfigurationError):
            BufferMemoryOptions(max_messages=None)

    def test_negative_limits_rejected(self):
        with pytest.raises(MemoryConfigurationError, match="non-negative"):
            BufferMemoryOptions(max_tokens=-1)
