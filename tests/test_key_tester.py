"""
Unit tests for key testing and chunk sweeps.

Run with: pytest tests/test_key_tester.py -v
"""

from unittest.mock import Mock

import pytest

from keysearch.core.exceptions import KeyTesterError
from keysearch.core.interfaces import Chunk, ChunkGrant, Target
from keysearch.search.chunk_search import ChunkSearch
from keysearch.services.key_tester import (
    DEFAULT_KNOWN_PLAINTEXT, BlowfishKeyTester, encrypt, key_to_bytes, key_to_hex
)
from keysearch.utils.logger import Logger


SECRET_KEY = 1500


@pytest.fixture
def ciphertext():
    return encrypt(DEFAULT_KNOWN_PLAINTEXT, SECRET_KEY, 4)


@pytest.fixture
def logger():
    return Logger(name="test-search", console=False)


class TestKeyEncoding:
    """Key integer to byte conversions."""

    def test_key_bytes_are_big_endian_fixed_width(self):
        assert key_to_bytes(258, 4) == b"\x00\x00\x01\x02"
        assert len(key_to_bytes(1, 8)) == 8

    def test_key_hex(self):
        assert key_to_hex(SECRET_KEY, 4) == "000005DC"
        assert key_to_hex(2 ** 32 - 1, 4) == "FFFFFFFF"


class TestBlowfishKeyTester:
    """Test suite for the Blowfish known-plaintext tester."""

    def test_correct_key_matches(self, ciphertext):
        """The encrypting key recovers the known plaintext."""
        tester = BlowfishKeyTester(ciphertext, key_width_bytes=4)

        assert tester.test(SECRET_KEY) == DEFAULT_KNOWN_PLAINTEXT

    def test_wrong_keys_do_not_match(self, ciphertext):
        """Neighbouring keys do not match."""
        tester = BlowfishKeyTester(ciphertext, key_width_bytes=4)

        assert tester.test(SECRET_KEY - 1) is None
        assert tester.test(SECRET_KEY + 1) is None

    def test_other_plaintext_does_not_match(self, ciphertext):
        """A correct decryption of a different plaintext is no match."""
        tester = BlowfishKeyTester(ciphertext, key_width_bytes=4, known_plaintext="something else")

        assert tester.test(SECRET_KEY) is None

    def test_key_hex_uses_key_width(self, ciphertext):
        tester = BlowfishKeyTester(ciphertext, key_width_bytes=4)

        assert tester.key_hex(SECRET_KEY) == "000005DC"

    def test_invalid_base64_rejected(self):
        with pytest.raises(KeyTesterError):
            BlowfishKeyTester("not base64!!", key_width_bytes=4)

    def test_partial_block_rejected(self):
        """Three bytes of ciphertext are not a whole Blowfish block."""
        with pytest.raises(KeyTesterError):
            BlowfishKeyTester("QUJD", key_width_bytes=4)

    def test_key_width_bounds(self, ciphertext):
        with pytest.raises(KeyTesterError):
            BlowfishKeyTester(ciphertext, key_width_bytes=3)
        with pytest.raises(KeyTesterError):
            BlowfishKeyTester(ciphertext, key_width_bytes=57)


class TestChunkSearch:
    """Test suite for sweeping a chunk with a real tester."""

    @pytest.fixture
    def searcher(self, logger):
        return ChunkSearch(
            lambda target: BlowfishKeyTester(target.ciphertext, target.key_width_bytes),
            logger=logger
        )

    def test_finds_key_inside_chunk(self, searcher, ciphertext):
        """The sweep stops at the matching key."""
        grant = ChunkGrant(Chunk(1490, 20), Target(ciphertext, 4))

        result = searcher.search(grant)

        assert result.found is True
        assert result.key == SECRET_KEY
        assert result.key_hex == "000005DC"
        assert result.keys_tested == 11

    def test_exhausts_chunk_without_key(self, searcher, ciphertext):
        """Every key of a chunk without the secret is tried."""
        grant = ChunkGrant(Chunk(0, 100), Target(ciphertext, 4))

        result = searcher.search(grant)

        assert result.found is False
        assert result.key is None
        assert result.keys_tested == 100

    def test_key_at_chunk_end_is_excluded(self, searcher, ciphertext):
        """The chunk end is exclusive."""
        grant = ChunkGrant(Chunk(1400, 100), Target(ciphertext, 4))

        assert searcher.search(grant).found is False

    def test_tester_built_once_per_target(self, logger):
        """Repeated grants for one target reuse the tester."""
        tester = Mock()
        tester.test.return_value = None
        factory = Mock(return_value=tester)
        searcher = ChunkSearch(factory, logger=logger)
        target = Target("abc", 4)

        searcher.search(ChunkGrant(Chunk(0, 3), target))
        searcher.search(ChunkGrant(Chunk(3, 3), target))

        factory.assert_called_once_with(target)
        assert tester.test.call_count == 6
