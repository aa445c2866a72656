import asyncio
import numpy as np
from typing import List
import os
import sys
import zlib

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from chatmemory import (
    Message,
    FunctionEmbeddings,
    BufferMemoryOptions,
    SummaryBufferMemoryOptions,
    VectorMemoryOptions,
    create_memory,
)

# Mock embedding function (bag of hashed words, so shared words score high)
def mock_embed_fn(texts: List[str]) -> List[List[float]]:
    """
    Generates deterministic vectors for demonstration.
    In a real app, this would call OpenAI/Azure/etc.
    """
    dim = 64
    embeddings = []
    for text in texts:
        vec = np.zeros(dim, dtype='float32')
        for word in text.lower().split():
            vec[zlib.crc32(word.strip('?.,!').encode()) % dim] += 1.0
        embeddings.append(vec.tolist())
    return embeddings

# Mock summarizer: a real app would send `prompt` to a chat model
async def mock_summarizer(messages: List[Message], prompt: str) -> str:
    topics = [m.content for m in messages if m.role == 'user']
    return "User asked about: " + "; ".join(topics)

CONVERSATION = [
    Message(role='system', content="You are a helpful support assistant."),
    Message(role='user', content="I forgot my password, how do I reset it?"),
    Message(role='assistant', content="Click 'Forgot Password' on the login page."),
    Message(role='user', content="What is the weather like today?"),
    Message(role='assistant', content="It is sunny and 25 degrees."),
    Message(role='user', content="My account is locked out."),
    Message(role='assistant', content="Please contact support to unlock your account."),
]

async def main():
    print("--- Buffer Memory ---")
    buffer = create_memory('buffer', options=BufferMemoryOptions(max_messages=4))
    await buffer.add_many(CONVERSATION)
    for m in await buffer.get_messages():
        print(f"[{m.role}] {m.content}")

    print("\n--- Summary-Buffer Memory ---")
    summary_buffer = create_memory(
        'summary-buffer',
        summarizer=mock_summarizer,
        options=SummaryBufferMemoryOptions(buffer_size=2, summarize_threshold=40),
    )
    await summary_buffer.add_many(CONVERSATION)
    for m in await summary_buffer.get_messages():
        print(f"[{m.role}] {m.content}")

    print("\n--- Vector Memory ---")
    vector = create_memory(
        'vector',
        embeddings=FunctionEmbeddings(mock_embed_fn, model="mock-64"),
        options=VectorMemoryOptions(top_k=3, min_score=0.1),
    )
    await vector.add_many(CONVERSATION)

    query = "how do I reset my password"
    print(f"Query: '{query}'")
    for rank, result in enumerate(await vector.search(query)):
        print(f"{rank+1}. [Score: {result.score:.4f}] {result.message.message.content}")

    print("\nContext for the next turn:")
    for m in await vector.build_context(query, recent_count=2, relevant_count=2):
        print(f"[{m.role}] {m.content}")

if __name__ == "__main__":
    asyncio.run(main())
