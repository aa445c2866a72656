"""
Exceptions raised by the memory engine and its stores.
"""


class MemoryConfigurationError(ValueError):
    """
    A memory strategy or store was used without a required collaborator
    (summarizer, embeddings provider) or with inconsistent configuration
    (invalid options, mismatched embedding dimensions).
    """


class StorageQuotaError(RuntimeError):
    """A persistent store refused a write because its storage quota is exhausted."""
