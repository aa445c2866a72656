import inspect
import numbers
from dataclasses import dataclass, field
from typing import Any, List, Union, Callable, Awaitable, Optional, Protocol, runtime_checkable

from .errors import MemoryConfigurationError
from .tokenizer import estimate_tokens

# EmbedFn can be synchronous or asynchronous
# Input: List[str] (texts to embed)
# Output: List[List[float]] (list of vectors)
EmbedFn = Union[
    Callable[[List[str]], List[List[float]]],
    Callable[[List[str]], Awaitable[List[List[float]]]]
]


@dataclass
class EmbeddingResult:
    """Embedding of a single text."""
    text: str
    vector: List[float]
    token_count: Optional[int] = None


@dataclass
class EmbeddingUsage:
    prompt_tokens: int = 0
    total_tokens: int = 0


@dataclass
class BatchEmbeddingResult:
    """Embeddings for a batch of texts, in input order."""
    items: List[EmbeddingResult]
    model: str
    usage: EmbeddingUsage = field(default_factory=EmbeddingUsage)


@runtime_checkable
class EmbeddingsProvider(Protocol):
    """Protocol for embedding providers. Vectors must share one dimension per provider."""
    name: str

    async def embed(self, text: str) -> EmbeddingResult:
        ...

    async def embed_many(self, texts: List[str]) -> BatchEmbeddingResult:
        ...


def as_vector(vector: Any) -> Any:
    """
    Normalize one embedding to a list of Python floats.

    Accepts numpy arrays and sequences of numpy scalars. Anything that is not
    list-like, or values that are not numbers, are passed through unchanged
    for `validate_vectors` to reject.
    """
    if hasattr(vector, 'tolist'):
        vector = vector.tolist()
    if not isinstance(vector, (list, tuple)):
        return vector
    return [float(x) if isinstance(x, numbers.Real) else x for x in vector]


def validate_vectors(vectors: List[List[float]], expected_dim: Optional[int] = None) -> None:
    """
    Validates that the input is a list of numeric vectors with consistent dimensions.

    Args:
        vectors: The list of vectors to validate.
        expected_dim: Optional expected dimension to enforce.

    Raises:
        MemoryConfigurationError: If validation fails.
    """
    if not isinstance(vectors, list):
        raise MemoryConfigurationError("Output must be a list of vectors.")

    if not vectors:
        return

    first_dim = len(vectors[0])
    if expected_dim is not None and first_dim != expected_dim:
        raise MemoryConfigurationError(f"Expected embedding dimension {expected_dim}, got {first_dim}.")

    for i, vec in enumerate(vectors):
        if not isinstance(vec, list):
            raise MemoryConfigurationError(f"Item at index {i} is not a list.")

        if len(vec) != first_dim:
            raise MemoryConfigurationError(f"Vector at index {i} has dimension {len(vec)}, expected {first_dim}.")

        # Basic type check for floats (or ints that can be floats)
        if not all(isinstance(x, numbers.Real) for x in vec):
            raise MemoryConfigurationError(f"Vector at index {i} contains non-numeric values.")


class FunctionEmbeddings:
    """
    Embeddings provider wrapping a plain embedding function.

    The function takes a list of texts and returns one vector per text. It may
    be sync or async, and may return numpy arrays.

    Usage:
        embeddings = FunctionEmbeddings(lambda texts: model.encode(texts), model="all-MiniLM-L6-v2")
        memory = VectorMemory(embeddings)
    """

    def __init__(self, embed_fn: EmbedFn, model: str = 'custom', name: str = 'function'):
        if embed_fn is None:
            raise MemoryConfigurationError("FunctionEmbeddings requires an embed_fn")
        self._embed_fn = embed_fn
        self.model = model
        self.name = name

    async def embed(self, text: str) -> EmbeddingResult:
        batch = await self.embed_many([text])
        return batch.items[0]

    async def embed_many(self, texts: List[str]) -> BatchEmbeddingResult:
        if not texts:
            return BatchEmbeddingResult(items=[], model=self.model)

        vectors = self._embed_fn(list(texts))
        if inspect.isawaitable(vectors):
            vectors = await vectors
        vectors = [as_vector(v) for v in vectors]

        validate_vectors(vectors)
        if len(vectors) != len(texts):
            raise MemoryConfigurationError(
                f"Embedding function returned {len(vectors)} vectors for {len(texts)} texts."
            )

        items = [
            EmbeddingResult(text=text, vector=vector, token_count=estimate_tokens(text))
            for text, vector in zip(texts, vectors)
        ]
        prompt_tokens = sum(item.token_count for item in items)
        return BatchEmbeddingResult(
            items=items,
            model=self.model,
            usage=EmbeddingUsage(prompt_tokens=prompt_tokens, total_tokens=prompt_tokens),
        )
