"""
Chunk allocation over a shared key-space cursor.

Implements IChunkAllocator. One instance is shared by every connection
handler of the allocator server.
"""

import threading
from typing import Optional

from keysearch.core.exceptions import ConfigurationError
from keysearch.core.interfaces import AllocatorStats, Chunk, IChunkAllocator
from keysearch.utils.logger import Logger


class ChunkAllocator(IChunkAllocator):
    """
    Hands out disjoint, gap-free chunks of the key-space.

    The cursor only moves forward. Chunks that come back as "not found"
    are never re-issued, and neither are chunks lost with a crashed worker.

    Example:
        >>> allocator = ChunkAllocator(total_keys=16)
        >>> allocator.allocate(5)
        Chunk(start=0, size=5)
    """

    def __init__(
        self,
        total_keys: int,
        initial_key: int = 0,
        logger: Optional[Logger] = None
    ):
        """
        Initialize allocator.

        Args:
            total_keys: Size of the key-space
            initial_key: First key to hand out
            logger: Logger instance

        Raises:
            ConfigurationError: If initial_key lies outside the key-space
        """
        if total_keys <= 0:
            raise ConfigurationError(f"Key-space must not be empty, got {total_keys}")
        if not 0 <= initial_key <= total_keys:
            raise ConfigurationError(
                f"Initial key {initial_key} outside key-space [0, {total_keys}]"
            )

        self.total_keys = total_keys
        self.logger = logger or Logger()

        self._lock = threading.Lock()
        self._cursor = initial_key
        self._found = False
        self._chunks_granted = 0
        self._keys_granted = 0
        self._reports_not_found = 0
        self._reported_key: Optional[int] = None
        self._reported_key_hex: Optional[str] = None

    @property
    def cursor(self) -> int:
        with self._lock:
            return self._cursor

    @property
    def found(self) -> bool:
        with self._lock:
            return self._found

    def has_work(self) -> bool:
        with self._lock:
            return self._cursor < self.total_keys and not self._found

    def allocate(self, requested_size: int) -> Chunk:
        """
        Carve off the next chunk.

        The chunk is clipped to the remaining keys. Once the key is found,
        or the space is exhausted, an empty chunk is returned.

        Args:
            requested_size: Number of keys the worker asked for

        Returns:
            Chunk starting at the pre-increment cursor

        Raises:
            ValueError: If requested_size is negative
        """
        if requested_size < 0:
            raise ValueError(f"Requested chunk size must not be negative, got {requested_size}")

        with self._lock:
            start = self._cursor
            if self._found:
                size = 0
            else:
                size = min(self.total_keys - start, requested_size)
            self._cursor = start + size
            if size:
                self._chunks_granted += 1
                self._keys_granted += size

        self.logger.debug(f"Allocated chunk [{start}, {start + size}) for request of {requested_size}")
        return Chunk(start=start, size=size)

    def report_found(self, key: Optional[int] = None, key_hex: Optional[str] = None) -> bool:
        with self._lock:
            if self._found:
                return False
            self._found = True
            self._reported_key = key
            self._reported_key_hex = key_hex

        self.logger.info(f"Key reported found: {key} ({key_hex})")
        return True

    def report_not_found(self) -> None:
        with self._lock:
            self._reports_not_found += 1

    def stats(self) -> AllocatorStats:
        with self._lock:
            return AllocatorStats(
                cursor=self._cursor,
                total_keys=self.total_keys,
                found=self._found,
                chunks_granted=self._chunks_granted,
                keys_granted=self._keys_granted,
                reports_not_found=self._reports_not_found,
                reported_key=self._reported_key,
                reported_key_hex=self._reported_key_hex
            )
