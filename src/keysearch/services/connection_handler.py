"""
Per-connection request/response loop of the allocator.

One handler serves one accepted socket: read a line, dispatch it to the
shared ChunkAllocator, write the response, repeat. The handler closes on
peer disconnect, on a found report, on an I/O error, or when the server's
stop event is set while no request is pending. A line longer than
MAX_LINE_BYTES gets an error response and closes the connection.
"""

import socket
import threading
from typing import Callable, Optional, Tuple

from keysearch.core.exceptions import ProtocolError
from keysearch.core.interfaces import IChunkAllocator, Target
from keysearch.core.protocol import (
    ENCODING, LINE_END, RequestKind, encode_chunk_grant, encode_error,
    encode_work_left, parse_request
)
from keysearch.utils.logger import Logger


RECV_SIZE = 4096
MAX_LINE_BYTES = 64 * 1024


class ConnectionHandler:
    """
    Serves the wire protocol on one connection.

    Example:
        >>> handler = ConnectionHandler(conn, addr, allocator, target, stop_event)
        >>> threading.Thread(target=handler.handle).start()
    """

    def __init__(
        self,
        conn: socket.socket,
        addr,
        allocator: IChunkAllocator,
        target: Target,
        stop_event: threading.Event,
        on_found: Optional[Callable[[bool], None]] = None,
        poll_interval: float = 0.25,
        logger: Optional[Logger] = None
    ):
        """
        Initialize handler.

        Args:
            conn: Accepted socket
            addr: Peer address, for logging
            allocator: Shared allocator
            target: Target sent along with every chunk grant
            stop_event: Set by the server when it stops accepting
            on_found: Called after a found report with True for the first report
            poll_interval: Seconds between stop-event checks while idle
            logger: Logger instance
        """
        self.conn = conn
        self.addr = addr
        self.allocator = allocator
        self.target = target
        self.stop_event = stop_event
        self.on_found = on_found
        self.poll_interval = poll_interval
        self.logger = logger or Logger()
        self._buffer = b""

    def handle(self) -> None:
        """Run until the connection closes. Never raises."""
        try:
            self.conn.settimeout(self.poll_interval)
            self._serve()
        except OSError as e:
            self.logger.warning(f"Connection {self.addr} failed: {e}")
        except Exception as e:
            self.logger.error(f"Unexpected error on connection {self.addr}: {e!r}")
        finally:
            self.conn.close()

    def _serve(self) -> None:
        while True:
            try:
                line = self._read_line()
            except ProtocolError as e:
                self.logger.warning(f"Dropping {self.addr}: {e.reason}")
                self.conn.sendall((encode_error(e.reason) + LINE_END).encode(ENCODING))
                return
            if line is None:
                return

            self.logger.debug(f"{self.addr} sends: {line!r}")
            response, keep_open = self.dispatch(line)

            if response is not None:
                self.conn.sendall((response + LINE_END).encode(ENCODING))
                self.logger.debug(f"Responded to {self.addr}: {response!r}")

            if not keep_open:
                return

    def dispatch(self, line: str) -> Tuple[Optional[str], bool]:
        """
        Act on one request line.

        Returns:
            Tuple of (response line or None, whether to keep the connection open)
        """
        try:
            request = parse_request(line)
        except ProtocolError as e:
            self.logger.warning(f"Rejected request from {self.addr}: {e.reason}")
            return encode_error(e.reason), True

        if request.kind is RequestKind.WORK:
            chunk = self.allocator.allocate(request.size)
            return encode_chunk_grant(chunk, self.target), True

        if request.kind is RequestKind.WORK_LEFT:
            return encode_work_left(self.allocator.has_work()), True

        if request.kind is RequestKind.KEY_FOUND:
            first = self.allocator.report_found(request.key, request.key_hex)
            if self.on_found is not None:
                self.on_found(first)
            return None, False

        self.allocator.report_not_found()
        return None, True

    def _read_line(self) -> Optional[str]:
        while b"\n" not in self._buffer:
            try:
                data = self.conn.recv(RECV_SIZE)
            except socket.timeout:
                if self.stop_event.is_set():
                    return None
                continue

            if not data:
                # Peer closed; a final unterminated line still counts.
                if not self._buffer:
                    return None
                raw, self._buffer = self._buffer, b""
                return self._decode(raw)

            self._buffer += data
            if len(self._buffer) > MAX_LINE_BYTES and b"\n" not in self._buffer:
                raise ProtocolError(self._buffer[:32].decode(ENCODING, errors="replace"), "line too long")

        raw, _, self._buffer = self._buffer.partition(b"\n")
        return self._decode(raw)

    @staticmethod
    def _decode(raw: bytes) -> str:
        return raw.decode(ENCODING, errors="replace").rstrip("\r")
