"""
Embedding generation for qualified chunks.
"""

from .embedding_batch import EmbeddingBatchGenerator

__all__ = ['EmbeddingBatchGenerator']
