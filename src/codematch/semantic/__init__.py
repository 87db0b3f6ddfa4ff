"""Embedding service and semantic entity index."""

from codematch.semantic.embeddings import EmbeddingService, retry_on_openai_error
from codematch.semantic.index import SemanticEntityIndex, SimilarEntity, soundex

__all__ = [
    "EmbeddingService",
    "SemanticEntityIndex",
    "SimilarEntity",
    "retry_on_openai_error",
    "soundex",
]
