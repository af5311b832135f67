"""
Exhaustive sweep of one granted chunk.

Glues a chunk grant to a key tester: every key in [start, start + size)
is tried in order until the first match.
"""

import time
from typing import Callable, Dict, Optional

from keysearch.core.interfaces import ChunkGrant, IKeyTester, SearchResult, Target
from keysearch.utils.logger import Logger


TesterFactory = Callable[[Target], IKeyTester]


class ChunkSearch:
    """
    Sweeps chunks with a key tester built for each grant's target.

    Testers are cached per target since every grant of a run carries
    the same one.

    Example:
        >>> search = ChunkSearch(lambda t: BlowfishKeyTester(t.ciphertext, t.key_width_bytes))
        >>> result = search.search(grant)
        >>> result.found, result.key_hex
        (True, '000005DC')
    """

    def __init__(
        self,
        tester_factory: TesterFactory,
        logger: Optional[Logger] = None,
        progress_interval: int = 100000
    ):
        """
        Initialize chunk search.

        Args:
            tester_factory: Builds a key tester for a target
            logger: Logger instance
            progress_interval: Keys between progress log lines (0 disables)
        """
        self.tester_factory = tester_factory
        self.logger = logger or Logger()
        self.progress_interval = progress_interval
        self._testers: Dict[Target, IKeyTester] = {}

    def tester_for(self, target: Target) -> IKeyTester:
        tester = self._testers.get(target)
        if tester is None:
            tester = self.tester_factory(target)
            self._testers[target] = tester
        return tester

    def search(self, grant: ChunkGrant) -> SearchResult:
        """
        Test every key of the chunk, stopping at the first match.

        Args:
            grant: Chunk and target from the allocator

        Returns:
            SearchResult with the matching key, or found=False

        Raises:
            KeyTesterError: If the target's ciphertext is unusable
        """
        tester = self.tester_for(grant.target)
        chunk = grant.chunk

        self.logger.info(f"Searching keys [{chunk.start}, {chunk.end}) ({chunk.size} keys)")
        start_time = time.perf_counter()

        tested = 0
        for key in range(chunk.start, chunk.end):
            tested += 1
            if tester.test(key) is not None:
                elapsed = time.perf_counter() - start_time
                key_hex = tester.key_hex(key)
                self.logger.info(f"[+] Key found: {key} ({key_hex}) after {tested} attempts")
                return SearchResult(
                    found=True,
                    key=key,
                    key_hex=key_hex,
                    keys_tested=tested,
                    elapsed=elapsed
                )

            if self.progress_interval and tested % self.progress_interval == 0:
                self.logger.debug(f"Tested {tested}/{chunk.size} keys, at {key}")

        elapsed = time.perf_counter() - start_time
        self.logger.info(f"No key in [{chunk.start}, {chunk.end}) ({elapsed:.2f}s)")
        return SearchResult(found=False, keys_tested=tested, elapsed=elapsed)
