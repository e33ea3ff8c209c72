"""Stub analysis providers."""

import asyncio
from collections.abc import Sequence
from typing import Optional

import pytest

from app.llm.config import AIRuntimeConfig

VALID_REPLY = (
    "Here is the analysis.\n"
    "^DT^\n"
    "{\n"
    '  "summary": "A beauty blogger uses a product roundup to show office '
    'workers light sunscreens, aiming to drive saves",\n'
    '  "contentType": "product roundup",\n'
    '  "relatedProducts": "Brand A sunscreen,Brand B sun stick"\n'
    "}\n"
    "^DT^"
)


class StubProvider:
    """Provider double that records calls and replies with fixed text."""

    name = "stub"

    def __init__(
        self,
        reply: str = VALID_REPLY,
        error: Optional[Exception] = None,
        gate: Optional[asyncio.Event] = None,
    ) -> None:
        self.reply = reply
        self.error = error
        self.gate = gate
        self.calls: list[tuple[str, list[str], str]] = []

    async def analyze(self, prompt: str, images: Sequence[str], model: str) -> str:
        self.calls.append((prompt, list(images), model))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.reply

    def resolve(self, config: AIRuntimeConfig) -> "StubProvider":
        return self


@pytest.fixture
def stub_provider() -> StubProvider:
    """A provider returning a well-formed analysis reply."""
    return StubProvider()
