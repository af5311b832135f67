"""
Unit tests for the line protocol.

Run with: pytest tests/test_protocol.py -v
"""

import pytest

from keysearch.core.exceptions import ProtocolError
from keysearch.core.interfaces import Chunk, Target
from keysearch.core.protocol import (
    RequestKind, decode_chunk_grant, decode_work_left, encode_chunk_grant,
    encode_error, encode_key_found, encode_key_not_found, encode_work_request,
    parse_request
)


class TestParseRequest:
    """Classification of request lines."""

    def test_work_request(self):
        """A work request carries its chunk size."""
        request = parse_request(encode_work_request(1000000))

        assert request.kind is RequestKind.WORK
        assert request.size == 1000000

    def test_work_request_uses_last_marker(self):
        """The size is read after the last marker in the line."""
        request = parse_request("junk Requesting Work: 5 Requesting Work: 7")

        assert request.size == 7

    def test_work_request_bad_size(self):
        """A non-integer chunk size is rejected."""
        with pytest.raises(ProtocolError) as exc_info:
            parse_request("Requesting Work: lots")

        assert "not an integer" in exc_info.value.reason

    def test_work_request_negative_size(self):
        """A negative chunk size is rejected."""
        with pytest.raises(ProtocolError):
            parse_request("Requesting Work: -5")

    def test_work_left_query_case_insensitive(self):
        """The work-left query ignores case and surrounding blanks."""
        assert parse_request("Work_Left?").kind is RequestKind.WORK_LEFT
        assert parse_request("  work_left?  ").kind is RequestKind.WORK_LEFT

    def test_key_found_report(self):
        """A found report carries the key and its hex form."""
        request = parse_request(encode_key_found(1500, "000005DC"))

        assert request.kind is RequestKind.KEY_FOUND
        assert request.key == 1500
        assert request.key_hex == "000005DC"

    def test_key_found_report_with_garbled_key(self):
        """A found report is still a found report without a readable key."""
        request = parse_request("Key Found: ???")

        assert request.kind is RequestKind.KEY_FOUND
        assert request.key is None

    def test_key_not_found_report(self):
        """The not-found report matches with or without its trailing space."""
        assert parse_request(encode_key_not_found()).kind is RequestKind.KEY_NOT_FOUND
        assert parse_request("Key Not Found:").kind is RequestKind.KEY_NOT_FOUND

    def test_unknown_request(self):
        """Anything else is a protocol error."""
        with pytest.raises(ProtocolError):
            parse_request("Hello?")


class TestChunkGrant:
    """Encoding and decoding of chunk grants."""

    def test_grant_format(self):
        """The grant is four tab-separated fields."""
        line = encode_chunk_grant(Chunk(10, 5), Target("Q0lQSEVS", 4))

        assert line == "InitialKey: 10\tChunkSize: 5\tKeySize: 4\tCipherText: Q0lQSEVS"

    def test_grant_survives_encoding(self):
        """Decoding recovers exactly what the allocator sent."""
        chunk = Chunk(2 ** 40 + 3, 1000000)
        target = Target("SGVsbG8gV29ybGQhISE=", 6)

        grant = decode_chunk_grant(encode_chunk_grant(chunk, target))

        assert grant.chunk == chunk
        assert grant.target == target

    def test_grant_tolerates_trailing_tab_and_crlf(self):
        """Older allocators end the grant with a tab."""
        grant = decode_chunk_grant("InitialKey: 1\tChunkSize: 2\tKeySize: 4\tCipherText: abc\t\r\n")

        assert grant.chunk == Chunk(1, 2)
        assert grant.target.ciphertext == "abc"

    def test_grant_missing_field(self):
        """A grant with fields missing is rejected."""
        with pytest.raises(ProtocolError):
            decode_chunk_grant("InitialKey: 1\tChunkSize: 2")

    def test_grant_bad_integer(self):
        """A grant with a non-integer start is rejected."""
        with pytest.raises(ProtocolError):
            decode_chunk_grant("InitialKey: x\tChunkSize: 2\tKeySize: 4\tCipherText: abc")

    def test_error_response_raises(self):
        """An error line from the allocator surfaces as ProtocolError."""
        with pytest.raises(ProtocolError) as exc_info:
            decode_chunk_grant(encode_error("unknown request"))

        assert exc_info.value.reason == "unknown request"


class TestWorkLeft:
    """Decoding of work-left answers."""

    def test_boolean_tokens(self):
        assert decode_work_left("true") is True
        assert decode_work_left("FALSE\r\n") is False

    def test_other_tokens_rejected(self):
        with pytest.raises(ProtocolError):
            decode_work_left("maybe")
