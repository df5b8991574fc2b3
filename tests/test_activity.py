"""Tests for the activity log and the transient feedback slot."""

import asyncio

import pytest

from ledger_sync.activity import ActivityLog, FeedbackKind, FeedbackSlot, LogCategory


@pytest.mark.unit
class TestActivityLog:
    """Bounded, newest-first, immutable entries."""

    def test_newest_first(self):
        log = ActivityLog()
        log.append("first")
        log.append("second")

        assert [e.message for e in log.entries()] == ["second", "first"]

    def test_keeps_only_capacity_newest(self):
        log = ActivityLog(capacity=20)
        for i in range(25):
            log.append(f"entry {i}")

        entries = log.entries()
        assert len(entries) == 20
        assert entries[0].message == "entry 24"
        assert entries[-1].message == "entry 5"

    def test_ids_are_monotonic(self):
        log = ActivityLog(capacity=2)
        ids = [log.append(str(i)).id for i in range(5)]

        assert ids == sorted(ids)
        assert len(set(ids)) == 5

    def test_category_accepts_value_string(self):
        entry = ActivityLog().append("royalties", "royalty")

        assert entry.category is LogCategory.ROYALTY

    def test_entries_are_frozen(self):
        entry = ActivityLog().append("x")

        with pytest.raises(AttributeError):
            entry.message = "changed"  # type: ignore

    def test_timestamp_is_utc(self):
        entry = ActivityLog().append("x")

        assert entry.timestamp.tzinfo is not None
        assert entry.timestamp.utcoffset().total_seconds() == 0

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            ActivityLog(capacity=0)

    def test_clear(self):
        log = ActivityLog()
        log.append("x")
        log.clear()

        assert len(log) == 0


class TestFeedbackSlot:
    """One notice at a time, cleared after the delay."""

    @pytest.mark.asyncio
    async def test_clears_after_delay(self):
        slot = FeedbackSlot(delay=0.01)
        slot.show("Saved", FeedbackKind.SUCCESS)

        assert slot.current.text == "Saved"
        await asyncio.sleep(0.05)
        assert slot.current is None

    @pytest.mark.asyncio
    async def test_new_message_replaces_and_restarts_timer(self):
        slot = FeedbackSlot(delay=0.05)
        slot.show("first")
        await asyncio.sleep(0.03)
        slot.show("second", "error")
        await asyncio.sleep(0.03)

        # The first timer would have fired by now
        assert slot.current.text == "second"
        assert slot.current.kind is FeedbackKind.ERROR
        await asyncio.sleep(0.05)
        assert slot.current is None

    @pytest.mark.unit
    def test_without_loop_keeps_message(self):
        slot = FeedbackSlot(delay=0.01)
        slot.show("kept")

        assert slot.current.text == "kept"
        slot.clear()
        assert slot.current is None
