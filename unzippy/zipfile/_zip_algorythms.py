import bz2
import logging
from io import BytesIO
from lzma import LZMAError
from typing import Callable, Optional

import deflate
import xz
import zstandard

from .._base_classes import Entry, EntrySection
from ..constants import *
from ..exceptions import *
from .utils.ZipEncrypt import ZipDecrypter

logger = logging.getLogger(__name__)

Decompressor = Callable[[bytes, int], bytes]
"""Takes entry payload and declared uncompressed size, returns decompressed data."""

UNSUPPORTED_REASONS: dict[int, str] = {
    1: 'Shrinking is not supported.',
    2: 'Reducing is not supported.',
    3: 'Reducing is not supported.',
    4: 'Reducing is not supported.',
    5: 'Reducing is not supported.',
    6: 'Legacy Implode is no longer supported. Use PKWARE Data Compression Library Imploding instead.',
    7: 'Tokenizing is not used by PKZIP.',
    9: 'Deflate64 is not supported.',
    11: 'Compression method 11 is reserved.',
    13: 'Compression method 13 is reserved.',
    15: 'Compression method 15 is reserved.',
    17: 'Compression method 17 is reserved.',
    AES_MARKER: 'AES encryption is not supported.',
}

RESERVED_METHODS: tuple[int, ...] = (11, 13, 15, 17)


def decrypt_entry(section: EntrySection, pwd: bytes, check_byte: Optional[int] = None) -> bytes:
    """Decrypt ``section`` and strip the encryption header. Returns the entry payload.

    The whole range is read at once: every byte depends on all bytes before it.

    Each encrypted file has an extra 12 bytes stored at the start of the data
    area defining the encryption header for that file. The last byte of the
    decrypted header SHOULD be the high-order byte of the CRC (or of the
    modification time if data descriptor is used). It is only compared with
    ``check_byte`` when one is given, so by default a wrong password goes
    unnoticed here and just produces garbage.
    """

    data = section.read_all()
    if len(data) < ENCRYPTION_HEADER_SIZE:
        raise BadFile(f'Encrypted entry is {len(data)} bytes long, shorter than its encryption header.')

    plain = ZipDecrypter(pwd).decrypt(data)

    if check_byte is not None and plain[ENCRYPTION_HEADER_SIZE - 1] != check_byte:
        raise WrongPassword('Given password is incorrect.')

    return plain[ENCRYPTION_HEADER_SIZE:]


def _stored(data: bytes, uncompressed_size: int) -> bytes:
    return data

def _deflate(data: bytes, uncompressed_size: int) -> bytes:
    try:
        return deflate.deflate_decompress(data, uncompressed_size)
    except deflate.DeflateError as e:
        raise DecompressionError(f'Invalid deflate stream: {e}') from e

def _bzip2(data: bytes, uncompressed_size: int) -> bytes:
    try:
        return bz2.decompress(data)
    except (OSError, ValueError, EOFError) as e:
        raise DecompressionError(f'Invalid BZIP2 stream: {e}') from e

def _zstandard(data: bytes, uncompressed_size: int) -> bytes:
    try:
        return zstandard.ZstdDecompressor().decompress(data, max_output_size=uncompressed_size)
    except zstandard.ZstdError as e:
        raise DecompressionError(f'Invalid Zstandard stream: {e}') from e

def _xz(data: bytes, uncompressed_size: int) -> bytes:
    try:
        with xz.open(BytesIO(data)) as f:
            return f.read()
    except (xz.XZError, LZMAError, EOFError, ValueError) as e:
        raise DecompressionError(f'Invalid XZ stream: {e}') from e


DECOMPRESSORS: dict[int, tuple[str, Decompressor]] = {
    ZIP_COMPRESSION_FROM_STR['Stored']: ('Stored', _stored),
    ZIP_COMPRESSION_FROM_STR['Deflate']: ('Deflate', _deflate),
    ZIP_COMPRESSION_FROM_STR['BZIP2']: ('BZIP2', _bzip2),
    ZIP_COMPRESSION_FROM_STR['Zstandard']: ('Zstandard', _zstandard),
    ZIP_COMPRESSION_FROM_STR['XZ']: ('XZ', _xz),
}
"""Stock decoders shared by all archives. Use ``Decoders.register`` to override them per archive."""


class Decoders:
    """Registration table of decoders for one archive.

    With a password every decoder runs the entry through ``decrypt_entry`` first.
    Without it entries go straight to their stock decompressor.
    """

    def __init__(self, pwd: Optional[bytes] = None, *, verify: bool = False):
        self._pwd: Optional[bytes] = pwd
        self._verify: bool = verify
        self._table: dict[int, tuple[str, Decompressor]] = dict(DECOMPRESSORS)

    @property
    def pwd(self) -> Optional[bytes]:
        return self._pwd

    def register(self, method: int, name: str, decompressor: Decompressor) -> None:
        """Register ``decompressor`` for compression ``method``. Replaces existing one."""
        self._table[method] = (name, decompressor)

    def name_of(self, method: int) -> str:
        if method in self._table:
            return self._table[method][0]
        return 'Unknown'

    def decompressor(self, method: int) -> Decompressor:
        """Return stock decompressor for ``method``.

        Raises UnsupportedMethod if none is registered, ReservedValue if the method id is reserved.
        """
        if method not in self._table:
            reason = UNSUPPORTED_REASONS.get(method, f'Unknown compression method {method}.')
            if method in RESERVED_METHODS:
                raise ReservedValue(reason)
            raise UnsupportedMethod(reason)
        return self._table[method][1]

    def decode(self, entry: Entry, section: EntrySection) -> bytes:
        """Decode ``entry`` stored in ``section``. Returns its original content."""

        decompressor = self.decompressor(entry.compression_method)

        if self._pwd is None:
            payload = section.read_all()
        else:
            check_byte = entry.check_byte if self._verify else None
            payload = decrypt_entry(section, self._pwd, check_byte)

        logger.debug(
            'Decoding %s (%s, %d bytes)', entry.filename, self.name_of(entry.compression_method), len(payload)
        )
        return decompressor(payload, entry.uncompressed_size)
