"""
Atomic id sequence tests.
"""
import asyncio

from core.sequence import SequenceGenerator


class TestSequenceGenerator:
    """Per-name counters in the counters collection"""

    async def test_starts_at_one_and_increments(self, db):
        sequences = SequenceGenerator(db)

        assert await sequences.current_value("payments") is None
        assert await sequences.next_id("payments") == 1
        assert await sequences.next_id("payments") == 2
        assert await sequences.current_value("payments") == 2

    async def test_names_are_independent(self, db):
        sequences = SequenceGenerator(db)

        await sequences.next_id("payments")
        await sequences.next_id("payments")

        assert await sequences.next_id("reports") == 1

    async def test_concurrent_callers_get_distinct_ids(self, db):
        sequences = SequenceGenerator(db)

        ids = await asyncio.gather(*(sequences.next_id("withdrawal_requests") for _ in range(25)))

        assert sorted(ids) == list(range(1, 26)), f"Duplicate or skipped ids: {sorted(ids)}"
