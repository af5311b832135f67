"""
Worker loop: poll the allocator, take a chunk, sweep it, report back.

A granted chunk is always swept and reported before the worker honours
a shutdown request. The window from chunk request to report is guarded
by a critical section that shutdown callers can block on.
"""

import signal
import threading
from typing import List, Optional

from keysearch.core.exceptions import ConfigurationError, ConnectionFailedException, ProtocolError
from keysearch.core.interfaces import IAllocatorClient, SearchResult
from keysearch.search.chunk_search import ChunkSearch
from keysearch.utils.logger import Logger
from keysearch.utils.stats import summarize_throughput


class CriticalSection:
    """
    Marks the request-search-report window as non-interruptible.

    Used as a context manager by the worker thread. Other threads wait on
    `wait_until_clear` instead of polling a flag.
    """

    def __init__(self):
        self._condition = threading.Condition()
        self._active = False

    @property
    def active(self) -> bool:
        with self._condition:
            return self._active

    def __enter__(self):
        with self._condition:
            self._active = True
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        with self._condition:
            self._active = False
            self._condition.notify_all()
        return False

    def wait_until_clear(self, timeout: Optional[float] = None) -> bool:
        """Block until no chunk is in flight. False if the timeout expired."""
        with self._condition:
            return self._condition.wait_for(lambda: not self._active, timeout)


class Worker:
    """
    Single-threaded search worker.

    Exit conditions, checked between cycles only:
    - the allocator does not accept a connection
    - the allocator reports no work left
    - a shutdown was requested
    - this worker found and reported the key

    Example:
        >>> worker = Worker(AllocatorClient(host, port), ChunkSearch(factory), chunk_size=1000000)
        >>> worker.install_signal_handlers()
        >>> result = worker.run()
    """

    def __init__(
        self,
        client: IAllocatorClient,
        searcher: ChunkSearch,
        chunk_size: int,
        logger: Optional[Logger] = None,
        retry_interval: float = 1.0
    ):
        """
        Initialize worker.

        Args:
            client: Transport to the allocator
            searcher: Sweeps granted chunks
            chunk_size: Number of keys to request per cycle
            logger: Logger instance
            retry_interval: Seconds to pause after a failed query or chunk request

        Raises:
            ConfigurationError: If chunk_size is not positive
        """
        if chunk_size <= 0:
            raise ConfigurationError(f"Chunk size must be positive, got {chunk_size}")

        self.client = client
        self.searcher = searcher
        self.chunk_size = chunk_size
        self.logger = logger or Logger()
        self.retry_interval = retry_interval

        self.critical_section = CriticalSection()
        self.result: Optional[SearchResult] = None
        self.reports_sent = 0

        self._shutdown = threading.Event()
        self._chunk_sizes: List[int] = []
        self._chunk_durations: List[float] = []

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown.is_set()

    def request_shutdown(self, wait: bool = False, timeout: Optional[float] = None) -> bool:
        """
        Ask the worker to stop after its current chunk.

        Args:
            wait: Block until the in-flight chunk has been reported
            timeout: Upper bound for the wait in seconds

        Returns:
            False only if waiting timed out
        """
        if not self._shutdown.is_set():
            self.logger.info("Shutdown requested. Finishing current work before stopping.")
        self._shutdown.set()

        if wait:
            return self.critical_section.wait_until_clear(timeout)
        return True

    def install_signal_handlers(self) -> None:
        """Route SIGINT/SIGTERM to a graceful shutdown. Main thread only."""
        def handler(signum, frame):
            self.request_shutdown(wait=False)

        signal.signal(signal.SIGINT, handler)
        signal.signal(signal.SIGTERM, handler)

    def run(self) -> Optional[SearchResult]:
        """
        Work until an exit condition holds.

        Returns:
            The successful SearchResult if this worker found the key, else None
        """
        self.logger.info(f"Worker started, chunk size {self.chunk_size}")

        while not self.shutdown_requested:
            if not self.client.is_alive():
                self.logger.info("Allocator unreachable, no more work")
                break

            try:
                if not self.client.work_left():
                    self.logger.info("Allocator reports no work left")
                    break
            except (ConnectionFailedException, ProtocolError) as e:
                self.logger.warning(f"Work-left query failed: {e}")
                self._pause_after_failure()
                continue

            try:
                if self._run_cycle():
                    break
            except (ConnectionFailedException, ProtocolError) as e:
                self.logger.warning(f"Chunk request failed, abandoning cycle: {e}")
                self._pause_after_failure()

        self._log_throughput()
        self.logger.info("Worker stopped")
        return self.result

    def _run_cycle(self) -> bool:
        """
        One request-search-report cycle. True if this worker found the key.

        A failed chunk request propagates; report failures are logged here.
        """
        with self.critical_section:
            grant = self.client.request_chunk(self.chunk_size)

            if grant.chunk.is_empty:
                self.logger.info("Allocator granted an empty chunk")
                return False

            result = self.searcher.search(grant)
            self._chunk_sizes.append(result.keys_tested)
            self._chunk_durations.append(result.elapsed)

            try:
                if result.found:
                    self.result = result
                    self.client.report_found(result.key, result.key_hex)
                else:
                    self.client.report_not_found()
                self.reports_sent += 1
            except ConnectionFailedException as e:
                self.logger.error(
                    f"Could not report chunk [{grant.chunk.start}, {grant.chunk.end}): {e}"
                )

            return result.found

    def _pause_after_failure(self) -> None:
        # Returns early when a shutdown is requested.
        self._shutdown.wait(self.retry_interval)

    def _log_throughput(self) -> None:
        if not self._chunk_sizes:
            return

        summary = summarize_throughput(self._chunk_sizes, self._chunk_durations)
        self.logger.info(
            f"Searched {summary.keys_tested} keys in {len(self._chunk_sizes)} chunks"
        )
        if summary.chunks:
            self.logger.info(
                f"Throughput: mean={summary.mean_rate:.0f} keys/s, "
                f"median={summary.median_rate:.0f} keys/s, "
                f"95% CI=[{summary.ci_low:.0f}, {summary.ci_high:.0f}]"
            )
