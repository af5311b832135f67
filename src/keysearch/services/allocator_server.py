"""
Allocator server: listening socket, accept loop, one thread per connection.

All handlers share one ChunkAllocator. The first found report stops the
accept loop; running handlers finish their current response and exit.
"""

import socket
import threading
import time
from typing import List, Optional, Tuple

from keysearch.core.interfaces import IChunkAllocator, Target
from keysearch.services.connection_handler import ConnectionHandler
from keysearch.utils.logger import Logger


class AllocatorServer:
    """
    Accepts worker connections and serves chunk requests concurrently.

    Example:
        >>> server = AllocatorServer(allocator, target, port=0)
        >>> host, port = server.run_in_background()
        >>> ...
        >>> server.close()
    """

    def __init__(
        self,
        allocator: IChunkAllocator,
        target: Target,
        host: str = "0.0.0.0",
        port: int = 0,
        poll_interval: float = 0.25,
        backlog: int = 50,
        logger: Optional[Logger] = None
    ):
        """
        Initialize server.

        Args:
            allocator: Shared chunk allocator
            target: Target broadcast in every chunk grant
            host: Interface to bind
            port: Port to bind; 0 picks an ephemeral port
            poll_interval: Seconds between stop checks in blocking calls
            backlog: Listen backlog
            logger: Logger instance
        """
        self.allocator = allocator
        self.target = target
        self.host = host
        self.port = port
        self.poll_interval = poll_interval
        self.backlog = backlog
        self.logger = logger or Logger()

        self.stop_event = threading.Event()
        self._sock: Optional[socket.socket] = None
        self._address: Optional[Tuple[str, int]] = None
        self._handlers: List[threading.Thread] = []
        self._handlers_lock = threading.Lock()
        self._serve_thread: Optional[threading.Thread] = None

        self.first_connect: Optional[float] = None
        self.found_at: Optional[float] = None

    @property
    def address(self) -> Tuple[str, int]:
        if self._address is None:
            raise RuntimeError("Server is not started")
        return self._address

    @property
    def elapsed(self) -> Optional[float]:
        """Seconds from the first connection to the found report."""
        if self.first_connect is None or self.found_at is None:
            return None
        return self.found_at - self.first_connect

    def start(self) -> Tuple[str, int]:
        """Bind and listen. Returns the bound address."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
            sock.listen(self.backlog)
        except (OSError, OverflowError):
            sock.close()
            raise
        sock.settimeout(self.poll_interval)
        self._sock = sock
        self._address = sock.getsockname()[:2]

        self.logger.info(f"Waiting for connections on port {self._address[1]}")
        return self.address

    def serve_forever(self) -> None:
        """Accept connections until stopped, then wait for running handlers."""
        if self._sock is None:
            self.start()

        try:
            while not self.stop_event.is_set():
                try:
                    conn, addr = self._sock.accept()
                except socket.timeout:
                    continue
                except OSError as e:
                    if self.stop_event.is_set():
                        break
                    self.logger.error(f"Accept failed: {e}")
                    raise

                if self.stop_event.is_set():
                    conn.close()
                    break

                self._spawn_handler(conn, addr)
        finally:
            self.stop_event.set()
            self._sock.close()
            self.logger.info("Stopped accepting connections")
            self.wait_for_handlers()

    def _spawn_handler(self, conn: socket.socket, addr) -> None:
        if self.first_connect is None:
            self.first_connect = time.monotonic()

        handler = ConnectionHandler(
            conn=conn,
            addr=addr,
            allocator=self.allocator,
            target=self.target,
            stop_event=self.stop_event,
            on_found=self.on_key_found,
            poll_interval=self.poll_interval,
            logger=self.logger
        )
        thread = threading.Thread(
            target=handler.handle,
            name=f"handler-{addr[0]}:{addr[1]}",
            daemon=True
        )
        with self._handlers_lock:
            self._handlers = [t for t in self._handlers if t.is_alive()]
            self._handlers.append(thread)
        thread.start()

    def on_key_found(self, first_report: bool) -> None:
        if first_report:
            self.found_at = time.monotonic()
            elapsed = self.elapsed
            if elapsed is not None:
                self.logger.info(f"It took {elapsed * 1000:.0f} ms to find the key")
        self.stop()

    def stop(self) -> None:
        """Stop accepting connections. Safe to call from any thread."""
        self.stop_event.set()

    def wait_for_handlers(self, timeout: Optional[float] = None) -> None:
        with self._handlers_lock:
            handlers = list(self._handlers)
        for thread in handlers:
            thread.join(timeout)

    def run_in_background(self) -> Tuple[str, int]:
        """Start the server and run the accept loop on a daemon thread."""
        address = self.start()
        self._serve_thread = threading.Thread(
            target=self.serve_forever,
            name="allocator-accept",
            daemon=True
        )
        self._serve_thread.start()
        return address

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for a background accept loop to finish."""
        if self._serve_thread is not None:
            self._serve_thread.join(timeout)

    def close(self) -> None:
        self.stop()
        self.join()
