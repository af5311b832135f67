"""
Worker-side transport for the allocator's line protocol.

Implements IAllocatorClient. Every call opens a fresh TCP connection,
performs one exchange and closes it again.
"""

import socket
from typing import Optional

from keysearch.core.exceptions import ConnectionFailedException
from keysearch.core.interfaces import ChunkGrant, IAllocatorClient
from keysearch.core.protocol import (
    ENCODING, LINE_END, REQUEST_IS_WORK_LEFT, decode_chunk_grant,
    decode_work_left, encode_key_found, encode_key_not_found, encode_work_request
)
from keysearch.utils.logger import Logger


class AllocatorClient(IAllocatorClient):
    """
    Talks to one allocator server.

    Network failures are not retried here; they surface as
    ConnectionFailedException so the worker loop can abandon the cycle.

    Example:
        >>> client = AllocatorClient("127.0.0.1", 5000)
        >>> if client.is_alive() and client.work_left():
        ...     grant = client.request_chunk(1000000)
    """

    def __init__(
        self,
        host: str,
        port: int,
        connect_timeout: float = 1.5,
        read_timeout: float = 30.0,
        logger: Optional[Logger] = None
    ):
        """
        Initialize client.

        Args:
            host: Allocator host name or address
            port: Allocator port
            connect_timeout: Seconds allowed for establishing a connection
            read_timeout: Seconds allowed for waiting on a response
            logger: Logger instance
        """
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.logger = logger or Logger()

    def is_alive(self) -> bool:
        try:
            with socket.create_connection((self.host, self.port), timeout=self.connect_timeout):
                return True
        except OSError as e:
            self.logger.debug(f"Allocator {self.host}:{self.port} unreachable: {e}")
            return False

    def work_left(self) -> bool:
        return decode_work_left(self._exchange(REQUEST_IS_WORK_LEFT))

    def request_chunk(self, size: int) -> ChunkGrant:
        response = self._exchange(encode_work_request(size))
        self.logger.info(f"From server: {response}")
        return decode_chunk_grant(response)

    def report_found(self, key: int, key_hex: str) -> None:
        self._exchange(encode_key_found(key, key_hex), expect_response=False)

    def report_not_found(self) -> None:
        self._exchange(encode_key_not_found(), expect_response=False)

    def _exchange(self, message: str, expect_response: bool = True) -> Optional[str]:
        """
        Send one line and optionally read one line back.

        Raises:
            ConnectionFailedException: On any socket error or early close
        """
        try:
            with socket.create_connection((self.host, self.port), timeout=self.connect_timeout) as sock:
                sock.settimeout(self.read_timeout)
                sock.sendall((message + LINE_END).encode(ENCODING))
                if not expect_response:
                    return None
                with sock.makefile("r", encoding=ENCODING, errors="replace", newline="") as reader:
                    line = reader.readline()
        except OSError as e:
            self.logger.warning(f"Exchange {message!r} with {self.host}:{self.port} failed: {e}")
            raise ConnectionFailedException(self.host, self.port, str(e))

        if not line:
            raise ConnectionFailedException(self.host, self.port, "connection closed before a response")
        return line.rstrip("\r\n")
