"""
HTTP clients for the embedding API and the LLM judge endpoint.
"""

from .embedding_client import EmbeddingAPIClient, EmbeddingClientConfig
from .judge_client import HTTPJudgeClient

__all__ = ['EmbeddingAPIClient', 'EmbeddingClientConfig', 'HTTPJudgeClient']
