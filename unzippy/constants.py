"""Constants with names of possible compressions and encryptions. Only supported algorythms are available."""
from typing import Literal, TypeAlias

UNENCRYPTED: TypeAlias = Literal['Unencrypted']
ZIP_CRYPTO: TypeAlias = Literal['ZipCrypto']

STORED: TypeAlias = Literal['Stored']
DEFLATE: TypeAlias = Literal['Deflate']
BZIP: TypeAlias = Literal['BZIP2']
ZSTANDARD: TypeAlias = Literal['Zstandard']
XZ: TypeAlias = Literal['XZ']

ZipCompressions: TypeAlias = Literal[STORED, DEFLATE, BZIP, ZSTANDARD, XZ]
ZipEncryptions: TypeAlias = Literal[UNENCRYPTED, ZIP_CRYPTO]

ZIP_COMPRESSION_FROM_STR: dict[ZipCompressions, int] = {
    'Stored': 0,
    'Deflate': 8,
    'BZIP2': 12,
    'Zstandard': 93,
    'XZ': 95
}

# General purpose bit flag
FLAG_ENCRYPTED: int = 0x0001
FLAG_DATA_DESCRIPTOR: int = 0x0008
FLAG_STRONG_ENCRYPTION: int = 0x0040
FLAG_UTF8: int = 0x0800
FLAG_CD_ENCRYPTED: int = 0x2000

# Size of the encryption header stored before every ZipCrypto entry
ENCRYPTION_HEADER_SIZE: int = 12

AES_MARKER: int = 99

INT32_MAX: int = 4_294_967_295
INT16_MAX: int = 65_535
