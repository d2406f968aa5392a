"""
LLM Judge HTTP Client

Posts one chunk at a time to the judge endpoint. Every failure mode is
reported as an unsuccessful JudgeResult; the client never raises.
"""

import logging
from typing import Optional

import httpx

from ..models.embedding_models import IJudgeClient, JudgeRequest, JudgeResult
from ..models.errors import JudgeError

logger = logging.getLogger(__name__)


class HTTPJudgeClient(IJudgeClient):
    """Judge endpoint client speaking the chunkContent/score JSON contract."""

    def __init__(
        self,
        judge_url: Optional[str],
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.judge_url = judge_url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def initialize(self):
        if self._client is not None:
            return

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        self._client = httpx.AsyncClient(
            headers=headers,
            timeout=httpx.Timeout(self.timeout),
            transport=self._transport,
        )

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def judge(self, request: JudgeRequest) -> JudgeResult:
        if not self.judge_url:
            logger.error("Judge endpoint not configured")
            return JudgeResult(success=False, error="Judge endpoint not configured")

        try:
            return await self._post(request)
        except JudgeError as e:
            logger.error(f"Judge call failed: {e}")
            return JudgeResult(success=False, error=str(e))

    async def _post(self, request: JudgeRequest) -> JudgeResult:
        if self._client is None:
            await self.initialize()

        try:
            response = await self._client.post(self.judge_url, json=request.to_payload())
        except httpx.HTTPError as e:
            raise JudgeError(f"Network error: {e}") from e

        if not response.is_success:
            logger.debug(f"Judge endpoint returned {response.status_code}: {response.text[:200]}")
            raise JudgeError(f"Judge endpoint error: {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise JudgeError(f"Invalid judge response: {e}") from e

        if not isinstance(data, dict):
            raise JudgeError("Invalid judge response: expected a JSON object")

        result = JudgeResult.from_payload(data)

        if result.success and result.score is not None and not 0.0 <= result.score <= 1.0:
            raise JudgeError(f"Judge score out of range: {result.score}")

        return result
