"""
Embedding API HTTP Client

Async client for an OpenAI-compatible embeddings endpoint. Transient
failures (transport errors, 429 and 5xx responses) are retried with
exponential backoff; everything else surfaces as EmbeddingAPIError.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from tenacity import (
    AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential
)

from ..models.embedding_models import IEmbeddingClient
from ..models.errors import EmbeddingAPIError, RateLimitError

logger = logging.getLogger(__name__)


class TransientEmbeddingError(EmbeddingAPIError):
    """Retryable server-side or transport failure."""
    pass


class _RetryableRateLimitError(RateLimitError, TransientEmbeddingError):
    """Rate limit responses are retried like other transient failures."""
    pass


@dataclass
class EmbeddingClientConfig:
    """Configuration for the embedding API client."""

    api_key: Optional[str] = None
    model: str = "text-embedding-ada-002"
    base_url: str = "https://api.openai.com/v1"
    dimensions: int = 1536
    timeout: float = 30.0
    max_retries: int = 2
    retry_min_wait: float = 1.0
    retry_max_wait: float = 10.0


class EmbeddingAPIClient(IEmbeddingClient):
    """Generates one embedding vector per call."""

    def __init__(
        self,
        config: EmbeddingClientConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.total_requests = 0
        self.failed_requests = 0

    @property
    def model(self) -> str:
        return self.config.model

    async def initialize(self):
        """Initialize the HTTP client."""
        if self._client is not None:
            return

        headers = {
            "Content-Type": "application/json",
            "User-Agent": "embedprep/1.0",
        }
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"

        self._client = httpx.AsyncClient(
            headers=headers,
            timeout=httpx.Timeout(self.config.timeout),
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
            transport=self._transport,
        )
        logger.info(f"Embedding client initialized ({self.config.model})")

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Embedding client closed")

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def generate_embedding(self, text: str) -> List[float]:
        """
        Generate an embedding for one text.

        Args:
            text: Chunk text to embed

        Returns:
            Embedding vector

        Raises:
            EmbeddingAPIError: If the request fails after retries
        """
        if self._client is None:
            await self.initialize()

        retrying = AsyncRetrying(
            wait=wait_exponential(
                multiplier=1, min=self.config.retry_min_wait, max=self.config.retry_max_wait
            ),
            stop=stop_after_attempt(self.config.max_retries + 1),
            retry=retry_if_exception_type(TransientEmbeddingError),
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                return await self._make_embedding_request(text)

    async def _make_embedding_request(self, text: str) -> List[float]:
        start_time = time.time()
        payload = {"input": text, "model": self.config.model}
        self.total_requests += 1

        try:
            response = await self._client.post(f"{self.config.base_url}/embeddings", json=payload)
        except httpx.RequestError as e:
            self.failed_requests += 1
            raise TransientEmbeddingError(f"Request failed: {e}") from e

        if response.status_code == 429:
            self.failed_requests += 1
            logger.warning("Embedding API rate limited")
            raise _RetryableRateLimitError("Rate limit exceeded")

        if response.status_code >= 500:
            self.failed_requests += 1
            raise TransientEmbeddingError(f"Server error: {response.status_code}")

        if response.status_code == 401:
            self.failed_requests += 1
            raise EmbeddingAPIError("Authentication failed - check API key")

        if response.status_code >= 400:
            self.failed_requests += 1
            raise EmbeddingAPIError(f"HTTP error {response.status_code}: {response.text}")

        embedding = self._parse_embedding(response)

        logger.debug(f"Generated embedding ({len(embedding)} dims) in {time.time() - start_time:.2f}s")
        return embedding

    def _parse_embedding(self, response: httpx.Response) -> List[float]:
        try:
            data: Dict[str, Any] = response.json()
            embedding = data["data"][0]["embedding"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise EmbeddingAPIError(f"Malformed embedding response: {e}") from e

        if not isinstance(embedding, list) or len(embedding) != self.config.dimensions:
            raise EmbeddingAPIError(
                f"Invalid embedding format or dimensions "
                f"(expected {self.config.dimensions}, got "
                f"{len(embedding) if isinstance(embedding, list) else type(embedding).__name__})"
            )

        return [float(value) for value in embedding]
