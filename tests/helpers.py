"""
Content builders and fake HTTP collaborators shared by the test suite.
"""

import asyncio
from typing import Callable, List, Optional

from embedprep.models.embedding_models import IEmbeddingClient, IJudgeClient, JudgeRequest, JudgeResult


def make_paragraph(topic: str, offset: int = 0, sentences: int = 4) -> str:
    """
    Distinct prose paragraph of roughly 80 estimated tokens.

    Numbers are offset per paragraph so different paragraphs share little
    vocabulary and are never flagged as near duplicates.
    """
    return " ".join(
        f"The {topic} section covers detail number {offset + i} "
        f"with distinct wording about {topic} item {offset + i}."
        for i in range(sentences)
    )


def make_post(*topics: str) -> str:
    return "\n\n".join(make_paragraph(topic, offset=10 * n) for n, topic in enumerate(topics))


# Paragraph chunking with a small budget: one chunk per generated paragraph
PARAGRAPH_OVERRIDE = {
    "post": {
        "chunking": {
            "strategy": "paragraph",
            "target_size": 60,
            "max_size": 100,
            "min_size": 10,
            "overlap": 0,
        }
    }
}


class FakeEmbeddingClient(IEmbeddingClient):
    """Records calls; raises for any text accepted by `fail_when`."""

    def __init__(
        self,
        fail_when: Optional[Callable[[str], bool]] = None,
        delay: float = 0.0,
        model: str = "test-embedding-model"
    ):
        self.fail_when = fail_when
        self.delay = delay
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._model = model

    @property
    def model(self) -> str:
        return self._model

    async def generate_embedding(self, text: str) -> List[float]:
        self.calls.append(text)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        if self.fail_when and self.fail_when(text):
            raise RuntimeError(f"embedding failed for chunk starting {text[:20]!r}")
        return [0.1, 0.2, 0.3]


class FakeJudgeClient(IJudgeClient):
    def __init__(self, score: Optional[float] = 0.9, success: bool = True):
        self.score = score
        self.success = success
        self.requests: List[JudgeRequest] = []

    async def judge(self, request: JudgeRequest) -> JudgeResult:
        self.requests.append(request)
        if not self.success:
            return JudgeResult(success=False, error="Judge endpoint error: 503")
        return JudgeResult(
            success=True,
            score=self.score,
            standalone=True,
            reason="reads well on its own",
            model="judge-test",
        )

