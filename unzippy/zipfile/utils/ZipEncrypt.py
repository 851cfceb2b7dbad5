# Copyright (c) 2018 Jonathan Koch
#
# Permission is hereby granted, free of charge, to any person obtaining a copy of
# this software and associated documentation files (the "Software"), to deal in
# the Software without restriction, including without limitation the rights to
# use, copy, modify, merge, publish, distribute, sublicense, and/or sell copies
# of the Software, and to permit persons to whom the Software is furnished to do
# so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.

# Based on https://github.com/devthat/zipencrypt.

"""Traditional PKWARE encryption (ZipCrypto).

ZIP supports a password-based form of encryption. Even though known
plaintext attacks have been found against it, it is still useful
to be able to get data out of such a file.

The cipher keeps three 32-bit keys. Every processed byte of *plaintext*
is fed back into the keys, so the stream can only be decrypted in order,
starting from the first byte of the encryption header.

Usage:
    zd = ZipDecrypter(b'mypwd')
    plain_byte = zd(cypher_byte)
    plain_text = zd.decrypt(cypher_text)
"""

from os import urandom
from typing import Optional

KEY0_INIT: int = 0x12345678
KEY1_INIT: int = 0x23456789
KEY2_INIT: int = 0x34567890
KEY_MULTIPLIER: int = 134775813
CRC32_POLYNOMIAL: int = 0xEDB88320
MASK32: int = 0xFFFFFFFF


def generate_crc_table() -> list[int]:
    """Generate a CRC-32 table.

    ZIP encryption uses the CRC32 one-byte primitive for scrambling some internal keys.
    """
    table = [0] * 256
    for i in range(256):
        crc = i
        for _ in range(8):
            if crc & 1:
                crc = (crc >> 1) ^ CRC32_POLYNOMIAL
            else:
                crc >>= 1
        table[i] = crc
    return table

CRC32_TABLE: list[int] = generate_crc_table()


def crc32_update(crc: int, byte: int) -> int:
    """Compute the CRC32 primitive on one byte."""
    return CRC32_TABLE[(crc ^ byte) & 0xFF] ^ (crc >> 8)


class CipherState:
    """Key state of the cipher. Belongs to exactly one decryption pass."""

    __slots__ = ('key0', 'key1', 'key2')

    def __init__(self, key0: int = KEY0_INIT, key1: int = KEY1_INIT, key2: int = KEY2_INIT):
        self.key0: int = key0
        self.key1: int = key1
        self.key2: int = key2

    @property
    def keys(self) -> tuple[int, int, int]:
        return self.key0, self.key1, self.key2

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CipherState):
            return NotImplemented
        return self.keys == other.keys

    def __repr__(self) -> str:
        return f'CipherState(key0=0x{self.key0:08x}, key1=0x{self.key1:08x}, key2=0x{self.key2:08x})'


def update(state: CipherState, byte: int) -> CipherState:
    """Advance ``state`` with one plaintext ``byte``. State is updated in place and returned."""
    state.key0 = crc32_update(state.key0, byte)
    state.key1 = (state.key1 + (state.key0 & 0xFF)) & MASK32
    state.key1 = (state.key1 * KEY_MULTIPLIER + 1) & MASK32
    state.key2 = crc32_update(state.key2, (state.key1 >> 24) & 0xFF)
    return state


def initialize(password: bytes) -> CipherState:
    """Derive fresh key state from ``password``."""
    state = CipherState()
    for byte in password:
        update(state, byte)
    return state


def keystream_byte(state: CipherState) -> int:
    t = (state.key2 | 2) & MASK32
    return ((t * (t ^ 1)) >> 8) & 0xFF


def decrypt_byte(state: CipherState, c: int) -> int:
    """Decrypt a single byte. Keys are updated with the decrypted byte."""
    p = c ^ keystream_byte(state)
    update(state, p)
    return p


def encrypt_byte(state: CipherState, p: int) -> int:
    """Encrypt a single byte. Keys are updated with the original byte."""
    c = p ^ keystream_byte(state)
    update(state, p)
    return c


class ZipDecrypter:

    """Class to handle decryption of files stored within a ZIP archive.

    Every instance owns its own key state. Create a new one for each entry.
    """

    def __init__(self, pwd: bytes):
        self.state: CipherState = initialize(pwd)

    def __call__(self, c: int) -> int:
        """Decrypt a single byte."""
        return decrypt_byte(self.state, c)

    def decrypt(self, data: bytes) -> bytes:
        return bytes(map(self, data))


class ZipEncrypter(ZipDecrypter):

    def __call__(self, c: int) -> int:
        """Encrypt a single byte."""
        return encrypt_byte(self.state, c)

    def encrypt(self, data: bytes) -> bytes:
        return bytes(map(self, data))


def encrypt(data: bytes, pwd: bytes, check_byte: int, header: Optional[bytes] = None) -> bytes:
    """Encrypt ``data`` and prepend the 12 bytes encryption header. Returns encrypted data.

    Header is 11 random bytes followed by ``check_byte`` unless full ``header`` is given.
    """

    if header is None:
        header = urandom(11) + bytes((check_byte & 0xFF,))
    elif len(header) != 12:
        raise ValueError(f'Encryption header must be 12 bytes long, got {len(header)}.')

    ze = ZipEncrypter(pwd)
    return ze.encrypt(header) + ze.encrypt(data)
