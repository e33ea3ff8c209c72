"""Tests for on-demand note analysis, image checks and recovery."""

import pytest

from app.llm.analysis import analyze_note, check_image_sensitive
from app.llm.config import AIRuntimeConfig
from app.llm.errors import (
    NoteNotClaimableError,
    NoteNotFoundError,
    ProviderError,
    ValidationError,
)
from app.llm.queue.recovery import reset_job, reset_jobs
from app.llm.queue.types import AnalysisStatus
from tests.fixtures.db import fetch_note
from tests.fixtures.providers import StubProvider

CONFIG = AIRuntimeConfig(enabled=True, provider="chatai", model="gemini-2.5-flash")
IMAGE_URL = "https://sns-img.example.com/notes/abc123!nd_dft_wlteh_webp_3"


class TestAnalyzeNote:
    """Test the single-note path."""

    @pytest.mark.asyncio
    async def test_should_analyze_pending_note(self, session_factory, make_note):
        await make_note("n1")

        outcome = await analyze_note(
            session_factory, "n1", provider_resolver=StubProvider().resolve
        )

        assert outcome.succeeded
        assert (await fetch_note(session_factory, "n1")).ai_status == "analyzed"

    @pytest.mark.asyncio
    async def test_should_retry_failed_note_even_when_disabled(
        self, session_factory, make_note
    ):
        await make_note("n1", ai_status="failed", ai_error="earlier failure")

        outcome = await analyze_note(
            session_factory, "n1", provider_resolver=StubProvider().resolve
        )

        assert outcome.succeeded
        assert (await fetch_note(session_factory, "n1")).ai_error is None

    @pytest.mark.asyncio
    async def test_should_raise_for_unknown_note(self, session_factory):
        with pytest.raises(NoteNotFoundError):
            await analyze_note(session_factory, "missing")

    @pytest.mark.asyncio
    async def test_should_raise_for_note_without_link(self, session_factory, make_note):
        await make_note("n1", note_link="")

        with pytest.raises(ValidationError):
            await analyze_note(session_factory, "n1")

        assert (await fetch_note(session_factory, "n1")).ai_status == "pending"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["in_progress", "analyzed"])
    async def test_should_raise_when_not_claimable(
        self, session_factory, make_note, status
    ):
        await make_note("n1", ai_status=status)
        provider = StubProvider()

        with pytest.raises(NoteNotClaimableError):
            await analyze_note(session_factory, "n1", provider_resolver=provider.resolve)

        assert provider.calls == []


class TestCheckImageSensitive:
    """Test the image screening variant."""

    @pytest.mark.asyncio
    async def test_should_return_description_for_clean_image(self):
        provider = StubProvider(reply='^DT^{"summary": "A bowl of noodles"}^DT^')

        result = await check_image_sensitive(IMAGE_URL, CONFIG, provider.resolve)

        assert result == {
            "image_url": IMAGE_URL,
            "image_id": "abc123",
            "description": "A bowl of noodles",
            "is_sensitive": False,
        }
        assert provider.calls[0][1] == [IMAGE_URL]

    @pytest.mark.asyncio
    async def test_refusal_is_sensitive(self):
        result = await check_image_sensitive(
            IMAGE_URL, CONFIG, StubProvider(reply="ext").resolve
        )

        assert result["is_sensitive"] is True
        assert result["description"] == ""
        assert "error" not in result

    @pytest.mark.asyncio
    async def test_provider_failure_is_sensitive_with_error(self):
        provider = StubProvider(error=ProviderError("OpenRouter request failed: 500"))

        result = await check_image_sensitive(IMAGE_URL, CONFIG, provider.resolve)

        assert result["is_sensitive"] is True
        assert result["error"] == "OpenRouter request failed: 500"

    @pytest.mark.asyncio
    async def test_unexpected_backend_error_is_sensitive_with_error(self):
        provider = StubProvider(error=RuntimeError("sdk blew up"))

        result = await check_image_sensitive(IMAGE_URL, CONFIG, provider.resolve)

        assert result["is_sensitive"] is True
        assert result["description"] == ""
        assert result["error"] == "sdk blew up"
        assert result["image_id"] == "abc123"

    @pytest.mark.asyncio
    async def test_protocol_relative_url_is_promoted(self):
        provider = StubProvider(reply='^DT^{"summary": "x"}^DT^')

        result = await check_image_sensitive(
            "//sns-img.example.com/abc123", CONFIG, provider.resolve
        )

        assert result["image_url"] == "https://sns-img.example.com/abc123"

    @pytest.mark.asyncio
    async def test_rejects_non_http_url(self):
        with pytest.raises(ValueError):
            await check_image_sensitive("file:///etc/passwd", CONFIG)


class TestRecovery:
    """Test manual requeueing."""

    @pytest.mark.asyncio
    async def test_reset_jobs_is_idempotent(self, session_factory, make_note):
        await make_note("w1", ai_status="in_progress")
        await make_note("w2", ai_status="in_progress")
        await make_note("f1", ai_status="failed")

        first = await reset_jobs(session_factory, "in_progress")
        second = await reset_jobs(session_factory, AnalysisStatus.IN_PROGRESS)

        assert (first, second) == (2, 0)
        assert (await fetch_note(session_factory, "f1")).ai_status == "failed"

    @pytest.mark.asyncio
    async def test_reset_jobs_rejects_pending(self, session_factory):
        with pytest.raises(ValueError):
            await reset_jobs(session_factory, "pending")

    @pytest.mark.asyncio
    async def test_reset_jobs_rejects_unknown_status(self, session_factory):
        with pytest.raises(ValueError):
            await reset_jobs(session_factory, "stuck")

    @pytest.mark.asyncio
    async def test_reset_job(self, session_factory, make_note):
        await make_note("f1", ai_status="failed", ai_error="boom")

        assert await reset_job(session_factory, "f1") is True
        assert await reset_job(session_factory, "f1") is False
        note = await fetch_note(session_factory, "f1")
        assert (note.ai_status, note.ai_error) == ("pending", None)
