"""
Known-plaintext key tester for Blowfish ciphertexts.

Implements IKeyTester. A candidate key is the big-endian, fixed-width
byte encoding of an integer; it matches when the ciphertext decrypts
(ECB, PKCS#7) to the known plaintext.
"""

import base64
import binascii
from typing import Optional

from Crypto.Cipher import Blowfish
from Crypto.Util.Padding import pad, unpad

from keysearch.core.exceptions import KeyTesterError
from keysearch.core.interfaces import IKeyTester, MIN_KEY_WIDTH_BYTES


MAX_KEY_WIDTH_BYTES = 56
DEFAULT_KNOWN_PLAINTEXT = "May good flourish; Kia hua ko te pai"


def key_to_bytes(key: int, key_width_bytes: int) -> bytes:
    """
    Fixed-width big-endian encoding of a key.

    Example:
        >>> key_to_bytes(258, 4)
        b'\\x00\\x00\\x01\\x02'
    """
    return key.to_bytes(key_width_bytes, "big")


def key_to_hex(key: int, key_width_bytes: int) -> str:
    """Upper-case hexadecimal form of the key bytes."""
    return key_to_bytes(key, key_width_bytes).hex().upper()


def decode_ciphertext(ciphertext: str) -> bytes:
    """
    Decode a base64 ciphertext and check it fits the Blowfish block size.

    Raises:
        KeyTesterError: If the text is not base64 or not whole blocks
    """
    try:
        raw = base64.b64decode(ciphertext, validate=True)
    except (binascii.Error, ValueError) as e:
        raise KeyTesterError(f"Ciphertext is not valid base64: {e}")

    if not raw or len(raw) % Blowfish.block_size:
        raise KeyTesterError(
            f"Ciphertext length {len(raw)} is not a positive multiple of "
            f"{Blowfish.block_size} bytes"
        )
    return raw


def encrypt(plaintext: str, key: int, key_width_bytes: int) -> str:
    """Produce a base64 ciphertext the tester will accept for `key`."""
    cipher = Blowfish.new(key_to_bytes(key, key_width_bytes), Blowfish.MODE_ECB)
    raw = cipher.encrypt(pad(plaintext.encode("utf-8"), Blowfish.block_size))
    return base64.b64encode(raw).decode("ascii")


class BlowfishKeyTester(IKeyTester):
    """
    Tests candidate keys against one Blowfish ciphertext.

    Example:
        >>> tester = BlowfishKeyTester(ciphertext, key_width_bytes=4)
        >>> tester.test(1500)
        'May good flourish; Kia hua ko te pai'
    """

    def __init__(
        self,
        ciphertext: str,
        key_width_bytes: int,
        known_plaintext: str = DEFAULT_KNOWN_PLAINTEXT
    ):
        """
        Initialize tester.

        Args:
            ciphertext: Base64 encoded ciphertext
            key_width_bytes: Width of a candidate key in bytes
            known_plaintext: Plaintext a correct key must produce

        Raises:
            KeyTesterError: If the ciphertext or key width is unusable
        """
        if not MIN_KEY_WIDTH_BYTES <= key_width_bytes <= MAX_KEY_WIDTH_BYTES:
            raise KeyTesterError(
                f"Blowfish keys are {MIN_KEY_WIDTH_BYTES}-{MAX_KEY_WIDTH_BYTES} bytes, "
                f"got {key_width_bytes}"
            )

        self.key_width_bytes = key_width_bytes
        self.known_plaintext = known_plaintext
        self._ciphertext = decode_ciphertext(ciphertext)
        self._expected = known_plaintext.encode("utf-8")

    def test(self, key: int) -> Optional[str]:
        cipher = Blowfish.new(key_to_bytes(key, self.key_width_bytes), Blowfish.MODE_ECB)
        padded = cipher.decrypt(self._ciphertext)
        try:
            plaintext = unpad(padded, Blowfish.block_size)
        except ValueError:
            return None

        if plaintext != self._expected:
            return None
        return self.known_plaintext

    def key_hex(self, key: int) -> str:
        return key_to_hex(key, self.key_width_bytes)
