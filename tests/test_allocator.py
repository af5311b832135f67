"""
Unit tests for chunk allocation.

Run with: pytest tests/test_allocator.py -v
"""

import random
from concurrent.futures import ThreadPoolExecutor

import pytest

from keysearch.core.exceptions import ConfigurationError
from keysearch.core.interfaces import Chunk, KeySpace
from keysearch.services.allocator_service import ChunkAllocator
from keysearch.utils.logger import Logger


@pytest.fixture
def logger():
    return Logger(name="test-allocator", console=False)


class TestKeySpace:
    """Test key-space sizing."""

    def test_total_keys(self):
        """A 4-byte key-space holds 2^32 keys."""
        assert KeySpace(key_width_bytes=4).total_keys == 2 ** 32
        assert KeySpace(key_width_bytes=8).total_keys == 2 ** 64


class TestChunkAllocator:
    """Test suite for ChunkAllocator."""

    def test_sequential_allocation_clips_to_remaining(self, logger):
        """Chunks of 5 over 16 keys end with a partial and then an empty chunk."""
        allocator = ChunkAllocator(total_keys=16, logger=logger)

        chunks = [allocator.allocate(5) for _ in range(5)]

        assert chunks == [
            Chunk(0, 5),
            Chunk(5, 5),
            Chunk(10, 5),
            Chunk(15, 1),
            Chunk(16, 0),
        ]
        assert chunks[-1].is_empty
        assert allocator.has_work() is False

    def test_has_work_until_exhausted(self, logger):
        """Work remains exactly while the cursor is below the key count."""
        allocator = ChunkAllocator(total_keys=10, logger=logger)

        assert allocator.has_work() is True
        allocator.allocate(9)
        assert allocator.has_work() is True
        allocator.allocate(9)
        assert allocator.has_work() is False

    def test_initial_key_offsets_cursor(self, logger):
        """The first chunk starts at the configured initial key."""
        allocator = ChunkAllocator(total_keys=100, initial_key=40, logger=logger)

        assert allocator.allocate(10) == Chunk(40, 10)
        assert allocator.cursor == 50

    def test_initial_key_outside_space_rejected(self, logger):
        """An initial key beyond the key-space is a configuration error."""
        with pytest.raises(ConfigurationError):
            ChunkAllocator(total_keys=16, initial_key=17, logger=logger)
        with pytest.raises(ConfigurationError):
            ChunkAllocator(total_keys=16, initial_key=-1, logger=logger)

    def test_negative_request_rejected(self, logger):
        """A negative chunk size is refused without moving the cursor."""
        allocator = ChunkAllocator(total_keys=16, logger=logger)

        with pytest.raises(ValueError):
            allocator.allocate(-1)
        assert allocator.cursor == 0

    def test_report_found_stops_work(self, logger):
        """After a found report there is no work regardless of headroom."""
        allocator = ChunkAllocator(total_keys=1000, logger=logger)
        allocator.allocate(10)

        assert allocator.report_found(5, "00000005") is True

        assert allocator.has_work() is False
        chunk = allocator.allocate(10)
        assert chunk.is_empty
        assert chunk.start == 10
        assert allocator.cursor == 10

    def test_report_found_is_idempotent(self, logger):
        """Only the first found report is recorded."""
        allocator = ChunkAllocator(total_keys=1000, logger=logger)

        assert allocator.report_found(5, "00000005") is True
        assert allocator.report_found(6, "00000006") is False

        stats = allocator.stats()
        assert stats.found is True
        assert stats.reported_key == 5
        assert stats.reported_key_hex == "00000005"

    def test_report_not_found_never_rewinds(self, logger):
        """Not-found reports are counted but the chunk is never re-issued."""
        allocator = ChunkAllocator(total_keys=100, logger=logger)
        allocator.allocate(10)

        allocator.report_not_found()
        allocator.report_not_found()

        stats = allocator.stats()
        assert stats.reports_not_found == 2
        assert stats.cursor == 10
        assert allocator.allocate(10) == Chunk(10, 10)

    def test_stats_count_granted_chunks(self, logger):
        """Empty chunks are not counted as grants."""
        allocator = ChunkAllocator(total_keys=12, logger=logger)
        for _ in range(4):
            allocator.allocate(5)

        stats = allocator.stats()
        assert stats.chunks_granted == 3
        assert stats.keys_granted == 12


class TestConcurrentAllocation:
    """Allocation from many threads at once."""

    def test_concurrent_chunks_are_disjoint_and_gap_free(self, logger):
        """Concurrent grants tile a prefix of the key-space exactly."""
        total_keys = 50000
        allocator = ChunkAllocator(total_keys=total_keys, logger=logger)
        rng = random.Random(1234)
        sizes = [rng.randint(0, 700) for _ in range(400)]

        with ThreadPoolExecutor(max_workers=8) as executor:
            chunks = list(executor.map(allocator.allocate, sizes))

        granted = sorted((c for c in chunks if not c.is_empty), key=lambda c: c.start)

        position = 0
        for chunk in granted:
            assert chunk.start == position
            position = chunk.end

        assert position == allocator.cursor
        assert position == min(total_keys, sum(sizes))

    def test_chunk_never_exceeds_remaining(self, logger):
        """No grant is larger than what was left when it was made."""
        total_keys = 1000
        allocator = ChunkAllocator(total_keys=total_keys, logger=logger)

        with ThreadPoolExecutor(max_workers=8) as executor:
            chunks = list(executor.map(allocator.allocate, [37] * 100))

        for chunk in chunks:
            assert chunk.size <= 37
            assert chunk.end <= total_keys

        assert sum(c.size for c in chunks) == total_keys
        assert sum(1 for c in chunks if 0 < c.size < 37) == 1
