"""Tests for the note job store."""

import asyncio

import pytest

from app.database.repositories import NoteRepository, SystemConfigRepository
from app.llm.queue.types import AnalysisStatus
from tests.fixtures.db import fetch_note


async def claim(session_factory):
    async with session_factory() as session:
        return await NoteRepository(session).claim_next_pending()


class TestClaimNextPending:
    """Test the atomic claim."""

    @pytest.mark.asyncio
    async def test_should_claim_oldest_pending_note(self, session_factory, make_note):
        # Arrange
        await make_note("older")
        await make_note("newer")

        # Act
        note = await claim(session_factory)

        # Assert
        assert note is not None
        assert note.note_id == "older"
        assert note.ai_status == AnalysisStatus.IN_PROGRESS.value
        stored = await fetch_note(session_factory, "older")
        assert stored.ai_status == AnalysisStatus.IN_PROGRESS.value

    @pytest.mark.asyncio
    async def test_should_skip_notes_without_link(self, session_factory, make_note):
        await make_note("no-link", note_link=None)
        await make_note("blank-link", note_link="   ")
        await make_note("linked")

        note = await claim(session_factory)

        assert note is not None and note.note_id == "linked"
        assert await claim(session_factory) is None

    @pytest.mark.asyncio
    async def test_should_only_claim_pending(self, session_factory, make_note):
        await make_note("failed", ai_status="failed")
        await make_note("busy", ai_status="in_progress")
        await make_note("done", ai_status="analyzed")

        assert await claim(session_factory) is None

    @pytest.mark.asyncio
    async def test_should_clear_previous_result_fields(
        self, session_factory, make_note
    ):
        await make_note("stale", ai_summary="old", ai_content_type="old", ai_error="x")

        note = await claim(session_factory)

        assert note is not None
        assert note.ai_summary is None
        assert note.ai_content_type is None
        assert note.ai_error is None

    @pytest.mark.asyncio
    async def test_concurrent_claims_never_share_a_note(
        self, session_factory, make_note
    ):
        # Arrange
        for i in range(3):
            await make_note(f"n{i}")

        # Act
        results = await asyncio.gather(*(claim(session_factory) for _ in range(6)))

        # Assert
        claimed = [note.note_id for note in results if note is not None]
        assert sorted(claimed) == ["n0", "n1", "n2"]
        assert results.count(None) == 3


class TestClaimNote:
    """Test the single-note compare-and-swap."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["pending", "failed"])
    async def test_should_claim_pending_or_failed(
        self, session_factory, make_note, status
    ):
        await make_note("n1", ai_status=status, ai_error="old error")

        async with session_factory() as session:
            note = await NoteRepository(session).claim_note("n1")

        assert note is not None
        assert note.ai_status == AnalysisStatus.IN_PROGRESS.value
        assert note.ai_error is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["in_progress", "analyzed"])
    async def test_should_refuse_other_statuses(self, session_factory, make_note, status):
        await make_note("n1", ai_status=status)

        async with session_factory() as session:
            assert await NoteRepository(session).claim_note("n1") is None

        assert (await fetch_note(session_factory, "n1")).ai_status == status


class TestTerminalWrites:
    """Test result and failure writes."""

    @pytest.mark.asyncio
    async def test_mark_analyzed_writes_result(self, session_factory, make_note):
        await make_note("n1", ai_status="in_progress")

        async with session_factory() as session:
            await NoteRepository(session).mark_analyzed(
                "n1",
                content_type="tutorial",
                related_products="A,B",
                summary="summary",
                raw_block="^DT^{}^DT^",
            )

        note = await fetch_note(session_factory, "n1")
        assert note.ai_status == AnalysisStatus.ANALYZED.value
        assert note.is_analyzed
        assert (note.ai_content_type, note.ai_related_products, note.ai_summary) == (
            "tutorial",
            "A,B",
            "summary",
        )
        assert note.ai_json == "^DT^{}^DT^"
        assert note.ai_error is None

    @pytest.mark.asyncio
    async def test_mark_failed_clears_result(self, session_factory, make_note):
        await make_note("n1", ai_status="in_progress", ai_summary="partial")

        async with session_factory() as session:
            await NoteRepository(session).mark_failed("n1", "backend timed out")

        note = await fetch_note(session_factory, "n1")
        assert note.ai_status == AnalysisStatus.FAILED.value
        assert note.ai_error == "backend timed out"
        assert note.ai_summary is None
        assert not note.is_analyzed

    @pytest.mark.asyncio
    async def test_mark_failed_records_error_type(self, session_factory, make_note):
        await make_note("n1", ai_status="in_progress")

        async with session_factory() as session:
            await NoteRepository(session).mark_failed(
                "n1", "backend timed out", error_type="ProviderError"
            )

        assert (await fetch_note(session_factory, "n1")).ai_error_type == (
            "ProviderError"
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["pending", "failed", "analyzed"])
    async def test_terminal_writes_skip_notes_not_in_progress(
        self, session_factory, make_note, status
    ):
        await make_note("n1", ai_status=status)

        async with session_factory() as session:
            repository = NoteRepository(session)
            failed = await repository.mark_failed("n1", "late failure")
            analyzed = await repository.mark_analyzed(
                "n1", content_type="x", related_products="", summary="late"
            )

        assert (failed, analyzed) == (False, False)
        note = await fetch_note(session_factory, "n1")
        assert note.ai_status == status
        assert note.ai_summary is None

    @pytest.mark.asyncio
    async def test_terminal_write_requires_matching_claim(
        self, session_factory, make_note
    ):
        await make_note("n1")
        first = await claim(session_factory)
        async with session_factory() as session:
            await NoteRepository(session).reset_note("n1")
        second = await claim(session_factory)

        async with session_factory() as session:
            repository = NoteRepository(session)
            stale = await repository.mark_failed(
                "n1", "stale", claimed_at=first.updated_at
            )
            current = await repository.mark_failed(
                "n1", "current", claimed_at=second.updated_at
            )

        assert (stale, current) == (False, True)
        assert (await fetch_note(session_factory, "n1")).ai_error == "current"


class TestReset:
    """Test requeueing."""

    @pytest.mark.asyncio
    async def test_reset_status_requeues_and_is_idempotent(
        self, session_factory, make_note
    ):
        await make_note(
            "f1", ai_status="failed", ai_error="boom", ai_error_type="ProviderError"
        )
        await make_note("f2", ai_status="failed")
        await make_note("p1")

        async with session_factory() as session:
            first = await NoteRepository(session).reset_status(AnalysisStatus.FAILED)
        async with session_factory() as session:
            second = await NoteRepository(session).reset_status(AnalysisStatus.FAILED)

        assert (first, second) == (2, 0)
        note = await fetch_note(session_factory, "f1")
        assert note.ai_status == AnalysisStatus.PENDING.value
        assert note.ai_error is None
        assert note.ai_error_type is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status", [AnalysisStatus.PENDING, AnalysisStatus.ANALYZED, AnalysisStatus.NO_CONTENT]
    )
    async def test_reset_status_rejects_other_statuses(self, db_session, status):
        with pytest.raises(ValueError):
            await NoteRepository(db_session).reset_status(status)

    @pytest.mark.asyncio
    async def test_reset_note(self, session_factory, make_note):
        await make_note("stuck", ai_status="in_progress")
        await make_note("done", ai_status="analyzed")

        async with session_factory() as session:
            repository = NoteRepository(session)
            assert await repository.reset_note("stuck") is True
            assert await repository.reset_note("done") is False
            assert await repository.reset_note("missing") is False


@pytest.mark.asyncio
async def test_stats_counts_each_bucket(session_factory, make_note):
    await make_note("p1")
    await make_note("p2")
    await make_note("w1", ai_status="in_progress")
    await make_note("f1", ai_status="failed")
    await make_note("a1", ai_status="analyzed")
    await make_note("empty", note_link="")

    async with session_factory() as session:
        stats = await NoteRepository(session).stats()

    assert stats.pending == 2
    assert stats.in_progress == 1
    assert stats.failed == 1
    assert stats.analyzed == 1
    assert stats.no_content == 1
    assert stats.total == 6


@pytest.mark.asyncio
async def test_has_claimable(session_factory, make_note):
    async with session_factory() as session:
        assert await NoteRepository(session).has_claimable() is False

    await make_note("no-link", note_link=None)
    async with session_factory() as session:
        assert await NoteRepository(session).has_claimable() is False

    await make_note("linked")
    async with session_factory() as session:
        assert await NoteRepository(session).has_claimable() is True


@pytest.mark.asyncio
async def test_system_config_set_and_get(db_session):
    repository = SystemConfigRepository(db_session)

    await repository.set_value("ai_model", "gemini-2.5-pro", updated_by="ops")
    await repository.set_value("ai_model", "gemini-2.0-flash")

    assert await repository.get_value("ai_model") == "gemini-2.0-flash"
    assert await repository.get_value("ai_provider") is None
    assert await repository.get_values(["ai_model", "ai_provider"]) == {
        "ai_model": "gemini-2.0-flash"
    }


@pytest.mark.asyncio
async def test_stats_keeps_unlinked_pending_notes_out_of_pending(
    session_factory, make_note
):
    await make_note("linked")
    await make_note("blank", note_link="   ")

    async with session_factory() as session:
        stats = await NoteRepository(session).stats()

    assert stats.pending == 1
    assert stats.no_content == 1
    assert stats.total == 2
    assert (
        stats.pending + stats.in_progress + stats.failed + stats.analyzed
        + stats.no_content
        == stats.total
    )


class TestFilteredMedia:
    """Test flagged image bookkeeping."""

    @pytest.mark.asyncio
    async def test_update_filtered_media_dedupes_and_strips(
        self, session_factory, make_note
    ):
        await make_note("n1")

        async with session_factory() as session:
            stored = await NoteRepository(session).update_filtered_media(
                "n1", [" abc ", "def", "", "abc"]
            )

        assert stored == "abc,def"
        note = await fetch_note(session_factory, "n1")
        assert note.ai_filter_media_id == "abc,def"
        assert note.filtered_media_ids == {"abc", "def"}

    @pytest.mark.asyncio
    async def test_update_filtered_media_clears_with_empty_list(
        self, session_factory, make_note
    ):
        await make_note("n1", ai_filter_media_id="abc")

        async with session_factory() as session:
            stored = await NoteRepository(session).update_filtered_media("n1", ["  "])

        assert stored == ""
        assert (await fetch_note(session_factory, "n1")).ai_filter_media_id is None

    @pytest.mark.asyncio
    async def test_update_filtered_media_unknown_note(self, db_session):
        repository = NoteRepository(db_session)

        assert await repository.update_filtered_media("nope", ["a"]) is None

    @pytest.mark.asyncio
    async def test_update_filtered_media_keeps_claim_valid(
        self, session_factory, make_note
    ):
        await make_note("n1")
        note = await claim(session_factory)

        async with session_factory() as session:
            repository = NoteRepository(session)
            await repository.update_filtered_media("n1", ["abc"])
            written = await repository.mark_failed(
                "n1", "boom", claimed_at=note.updated_at
            )

        assert written is True
