"""
Abstract interfaces and data model for the key search system.

Concrete services depend on these contracts so that the network client,
the key tester and the logger can be swapped out in tests.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


MIN_KEY_WIDTH_BYTES = 4


@dataclass(frozen=True)
class KeySpace:
    """
    The full set of candidate keys.

    Attributes:
        key_width_bytes: Width of a key in bytes
    """
    key_width_bytes: int

    @property
    def total_keys(self) -> int:
        return 1 << (8 * self.key_width_bytes)


@dataclass(frozen=True)
class Chunk:
    """
    A contiguous range of keys handed to one worker.

    Attributes:
        start: First key of the range
        size: Number of keys in the range; 0 means no work remains
    """
    start: int
    size: int

    @property
    def end(self) -> int:
        return self.start + self.size

    @property
    def is_empty(self) -> bool:
        return self.size == 0


@dataclass(frozen=True)
class Target:
    """
    What every worker is searching for.

    Attributes:
        ciphertext: Base64 encoded ciphertext
        key_width_bytes: Width of a candidate key in bytes
    """
    ciphertext: str
    key_width_bytes: int


@dataclass(frozen=True)
class ChunkGrant:
    """A chunk together with the target it must be tested against."""
    chunk: Chunk
    target: Target


@dataclass
class SearchResult:
    """
    Outcome of sweeping one chunk.

    Attributes:
        found: Whether a key in the chunk decrypted the target
        key: The matching key, if any
        key_hex: Hexadecimal form of the matching key bytes
        keys_tested: Number of candidate keys tried
        elapsed: Wall time spent on the sweep in seconds
    """
    found: bool
    key: Optional[int] = None
    key_hex: Optional[str] = None
    keys_tested: int = 0
    elapsed: float = 0.0


@dataclass
class AllocatorStats:
    """Diagnostic counters kept by the allocator."""
    cursor: int
    total_keys: int
    found: bool
    chunks_granted: int = 0
    keys_granted: int = 0
    reports_not_found: int = 0
    reported_key: Optional[int] = None
    reported_key_hex: Optional[str] = None


class IKeyTester(ABC):
    """
    Interface for testing a single candidate key.

    Implementations must be pure: the same key always gives the same answer.
    """

    @abstractmethod
    def test(self, key: int) -> Optional[str]:
        """
        Try a candidate key against the fixed ciphertext.

        Args:
            key: Candidate key as an integer

        Returns:
            The recovered plaintext on a match, otherwise None
        """
        pass

    @abstractmethod
    def key_hex(self, key: int) -> str:
        """Hexadecimal form of the key bytes as used by the cipher."""
        pass


class IChunkAllocator(ABC):
    """Interface for the shared cursor over the key-space."""

    @abstractmethod
    def has_work(self) -> bool:
        """True while keys remain and nobody has found the target."""
        pass

    @abstractmethod
    def allocate(self, requested_size: int) -> Chunk:
        """Carve the next chunk of at most `requested_size` keys."""
        pass

    @abstractmethod
    def report_found(self, key: Optional[int] = None, key_hex: Optional[str] = None) -> bool:
        """Mark the search as finished. Returns True for the first report."""
        pass

    @abstractmethod
    def report_not_found(self) -> None:
        """Record that a chunk was searched without success."""
        pass


class IAllocatorClient(ABC):
    """
    Interface for the worker side of the wire protocol.

    Every call opens its own connection to the allocator.
    """

    @abstractmethod
    def is_alive(self) -> bool:
        """Liveness probe: can a connection be opened at all?"""
        pass

    @abstractmethod
    def work_left(self) -> bool:
        """Ask whether any work remains."""
        pass

    @abstractmethod
    def request_chunk(self, size: int) -> ChunkGrant:
        """
        Request a chunk of `size` keys.

        Raises:
            ConnectionFailedException: If the exchange fails
            ProtocolError: If the allocator answers with an error
        """
        pass

    @abstractmethod
    def report_found(self, key: int, key_hex: str) -> None:
        """Tell the allocator the key has been found."""
        pass

    @abstractmethod
    def report_not_found(self) -> None:
        """Tell the allocator the last chunk held no match."""
        pass


class ILogger(ABC):
    """Interface for logging functionality."""

    @abstractmethod
    def debug(self, message: str) -> None:
        """Log debug message."""
        pass

    @abstractmethod
    def info(self, message: str) -> None:
        """Log info message."""
        pass

    @abstractmethod
    def warning(self, message: str) -> None:
        """Log warning message."""
        pass

    @abstractmethod
    def error(self, message: str) -> None:
        """Log error message."""
        pass
