"""
Line-based wire protocol between allocator and workers.

Every message is one ASCII line. Requests are matched in priority order:
work request, work-left query, key-found report, key-not-found report.
Anything else is answered with a single error line.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from keysearch.core.exceptions import ProtocolError
from keysearch.core.interfaces import Chunk, ChunkGrant, Target


ENCODING = "ascii"
LINE_END = "\r\n"

REQUEST_IS_WORK_LEFT = "Work_Left?"
REQUEST_WORK = "Requesting Work: "
KEY_FOUND = "Key Found: "
KEY_NOT_FOUND = "Key Not Found: "

GRANT_INITIAL_KEY = "InitialKey: "
GRANT_CHUNK_SIZE = "ChunkSize: "
GRANT_KEY_SIZE = "KeySize: "
GRANT_CIPHERTEXT = "CipherText: "

ERROR_PREFIX = "Error: "


class RequestKind(Enum):
    WORK = "work"
    WORK_LEFT = "work_left"
    KEY_FOUND = "key_found"
    KEY_NOT_FOUND = "key_not_found"


@dataclass(frozen=True)
class Request:
    """
    A parsed request line.

    Attributes:
        kind: Which of the four requests this is
        size: Requested chunk size (work requests only)
        key: Reported key (found reports only, if parseable)
        key_hex: Reported hexadecimal key (found reports only)
    """
    kind: RequestKind
    size: Optional[int] = None
    key: Optional[int] = None
    key_hex: Optional[str] = None


def parse_request(line: str) -> Request:
    """
    Classify a request line received by the allocator.

    Args:
        line: One line without its terminator

    Returns:
        The parsed request

    Raises:
        ProtocolError: If the line matches no request or carries a bad size
    """
    if REQUEST_WORK in line:
        raw_size = line[line.rindex(REQUEST_WORK) + len(REQUEST_WORK):].strip()
        try:
            size = int(raw_size)
        except ValueError:
            raise ProtocolError(line, f"chunk size {raw_size!r} is not an integer")
        if size < 0:
            raise ProtocolError(line, "chunk size must not be negative")
        return Request(RequestKind.WORK, size=size)

    normalized = line.strip().lower()

    if normalized == REQUEST_IS_WORK_LEFT.lower():
        return Request(RequestKind.WORK_LEFT)

    if KEY_FOUND in line:
        key, key_hex = _parse_found_payload(line[line.rindex(KEY_FOUND) + len(KEY_FOUND):])
        return Request(RequestKind.KEY_FOUND, key=key, key_hex=key_hex)

    if normalized == KEY_NOT_FOUND.strip().lower():
        return Request(RequestKind.KEY_NOT_FOUND)

    raise ProtocolError(line, "unknown request")


def _parse_found_payload(payload: str):
    # A found report is terminal even when its key material is garbled.
    key_part, _, hex_part = payload.partition(",")
    try:
        key = int(key_part.strip())
    except ValueError:
        key = None
    return key, hex_part.strip() or None


def encode_work_request(size: int) -> str:
    return f"{REQUEST_WORK}{size}"


def encode_key_found(key: int, key_hex: str) -> str:
    return f"{KEY_FOUND}{key}, {key_hex}"


def encode_key_not_found() -> str:
    return KEY_NOT_FOUND


def encode_work_left(work_left: bool) -> str:
    return "true" if work_left else "false"


def encode_error(reason: str) -> str:
    return f"{ERROR_PREFIX}{reason}"


def encode_chunk_grant(chunk: Chunk, target: Target) -> str:
    """Format a chunk grant as a single tab-separated line."""
    return "\t".join([
        f"{GRANT_INITIAL_KEY}{chunk.start}",
        f"{GRANT_CHUNK_SIZE}{chunk.size}",
        f"{GRANT_KEY_SIZE}{target.key_width_bytes}",
        f"{GRANT_CIPHERTEXT}{target.ciphertext}",
    ])


def decode_chunk_grant(line: str) -> ChunkGrant:
    """
    Parse a chunk grant received by a worker.

    Args:
        line: Response line from the allocator

    Returns:
        The chunk and target it describes

    Raises:
        ProtocolError: If the line is an error response or malformed
    """
    raise_for_error(line)

    fields = line.strip("\r\n").rstrip("\t").split("\t")
    if len(fields) != 4:
        raise ProtocolError(line, f"expected 4 fields, got {len(fields)}")

    start = _int_field(line, fields[0], GRANT_INITIAL_KEY)
    size = _int_field(line, fields[1], GRANT_CHUNK_SIZE)
    key_width = _int_field(line, fields[2], GRANT_KEY_SIZE)
    ciphertext = _field(line, fields[3], GRANT_CIPHERTEXT)

    return ChunkGrant(
        chunk=Chunk(start=start, size=size),
        target=Target(ciphertext=ciphertext, key_width_bytes=key_width)
    )


def decode_work_left(line: str) -> bool:
    raise_for_error(line)
    value = line.strip().lower()
    if value not in ("true", "false"):
        raise ProtocolError(line, "expected 'true' or 'false'")
    return value == "true"


def raise_for_error(line: str) -> None:
    if line.startswith(ERROR_PREFIX):
        raise ProtocolError(line, line[len(ERROR_PREFIX):].strip())


def _field(line: str, field: str, prefix: str) -> str:
    if not field.startswith(prefix):
        raise ProtocolError(line, f"missing {prefix.strip()!r} field")
    return field[len(prefix):]


def _int_field(line: str, field: str, prefix: str) -> int:
    value = _field(line, field, prefix)
    try:
        return int(value)
    except ValueError:
        raise ProtocolError(line, f"{prefix.strip()} {value!r} is not an integer")
