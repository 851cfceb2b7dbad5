"""Raw zip records.
See https://pkware.cachefly.net/webdocs/casestudies/APPNOTE.TXT for full documentation.

Every ``__init_raw__`` expects the stream to be positioned right after the record signature.
"""

from dataclasses import dataclass
from typing import BinaryIO

from ..constants import FLAG_UTF8, INT32_MAX
from ..exceptions import BadFile

LOCAL_HEADER_SIGNATURE: bytes = b'PK\x03\x04'
CD_HEADER_SIGNATURE: bytes = b'PK\x01\x02'
CD_END_SIGNATURE: bytes = b'PK\x05\x06'
ZIP64_CD_END_SIGNATURE: bytes = b'PK\x06\x06'
ZIP64_LOCATOR_SIGNATURE: bytes = b'PK\x06\x07'

LOCAL_HEADER_SIZE: int = 30
CD_END_SIZE: int = 22
ZIP64_LOCATOR_SIZE: int = 20
ZIP64_EXTRA_ID: int = 0x0001


def read_exact(file: BinaryIO, size: int) -> bytes:
    data = file.read(size)
    if len(data) != size:
        raise BadFile('Unexpected end of archive.')
    return data

def read_int(file: BinaryIO, size: int) -> int:
    return int.from_bytes(read_exact(file, size), 'little')

def decode_name(raw: bytes, flags: int, encoding: str) -> str:
    # Language encoding flag (EFS)
    if flags & FLAG_UTF8:
        return raw.decode('utf-8', errors='replace')
    return raw.decode(encoding, errors='replace')

def encode_name(name: str, flags: int, encoding: str) -> bytes:
    return name.encode('utf-8' if flags & FLAG_UTF8 else encoding)

def parse_zip64_extra(
        extra_field: bytes,
        uncompressed_size: int,
        compressed_size: int,
        offset: int
) -> tuple[int, int, int]:
    """Replace values that overflowed 32 bits with the ones stored in Zip64 extra field.

    Only fields set to 0xFFFFFFFF are present in the extra field, in fixed order.
    """

    i = 0
    while i + 4 <= len(extra_field):
        header_id = int.from_bytes(extra_field[i:i + 2], 'little')
        size = int.from_bytes(extra_field[i + 2:i + 4], 'little')
        data = extra_field[i + 4:i + 4 + size]
        i += 4 + size
        if header_id != ZIP64_EXTRA_ID:
            continue

        values = [data[j:j + 8] for j in range(0, len(data) - len(data) % 8, 8)]
        fields = [uncompressed_size, compressed_size, offset]
        for n, value in enumerate(fields):
            if value == INT32_MAX:
                if not values:
                    raise BadFile('Zip64 extra field is too short.')
                fields[n] = int.from_bytes(values.pop(0), 'little')
        return fields[0], fields[1], fields[2]

    return uncompressed_size, compressed_size, offset


@dataclass
class LocalHeader:
    """Local file header. Entry data follows it right away."""

    version_needed_to_extract: int
    flags: int
    compression_method: int
    last_mod_time: int
    last_mod_date: int
    crc: int
    compressed_size: int
    uncompressed_size: int
    filename_length: int
    extra_field_length: int
    filename: str
    extra_field: bytes

    @property
    def size(self) -> int:
        """Length of the header including signature and variable fields."""
        return LOCAL_HEADER_SIZE + self.filename_length + self.extra_field_length

    @classmethod
    def __init_raw__(cls, file: BinaryIO, encoding: str) -> 'LocalHeader':
        version_needed_to_extract = read_int(file, 2)
        flags = read_int(file, 2)
        compression_method = read_int(file, 2)
        last_mod_time = read_int(file, 2)
        last_mod_date = read_int(file, 2)
        crc = read_int(file, 4)
        compressed_size = read_int(file, 4)
        uncompressed_size = read_int(file, 4)
        filename_length = read_int(file, 2)
        extra_field_length = read_int(file, 2)
        filename = decode_name(read_exact(file, filename_length), flags, encoding)
        extra_field = read_exact(file, extra_field_length)

        return cls(
            version_needed_to_extract,
            flags,
            compression_method,
            last_mod_time,
            last_mod_date,
            crc,
            compressed_size,
            uncompressed_size,
            filename_length,
            extra_field_length,
            filename,
            extra_field
        )

    def encode(self, encoding: str) -> bytes:
        byte_str: bytes = LOCAL_HEADER_SIGNATURE
        byte_str += self.version_needed_to_extract.to_bytes(2, 'little')
        byte_str += self.flags.to_bytes(2, 'little')
        byte_str += self.compression_method.to_bytes(2, 'little')
        byte_str += self.last_mod_time.to_bytes(2, 'little')
        byte_str += self.last_mod_date.to_bytes(2, 'little')
        byte_str += self.crc.to_bytes(4, 'little')
        byte_str += self.compressed_size.to_bytes(4, 'little')
        byte_str += self.uncompressed_size.to_bytes(4, 'little')
        byte_str += self.filename_length.to_bytes(2, 'little')
        byte_str += self.extra_field_length.to_bytes(2, 'little')
        byte_str += encode_name(self.filename, self.flags, encoding)
        byte_str += self.extra_field
        return byte_str


@dataclass
class CDHeader:
    """Contents of Central Directory Header."""

    version_made_by: int
    platform: int
    version_needed_to_extract: int
    flags: int
    compression_method: int
    last_mod_time: int
    last_mod_date: int
    crc: int
    compressed_size: int
    uncompressed_size: int
    filename_length: int
    extra_field_length: int
    comment_length: int
    disk_number_start: int
    internal_file_attrs: int
    external_file_attrs: int
    local_header_relative_offset: int
    filename: str
    extra_field: bytes
    comment: str

    @classmethod
    def __init_raw__(cls, file: BinaryIO, encoding: str) -> 'CDHeader':
        version_made_by = read_int(file, 1)
        platform = read_int(file, 1)
        version_needed_to_extract = read_int(file, 2)
        flags = read_int(file, 2)
        compression_method = read_int(file, 2)
        last_mod_time = read_int(file, 2)
        last_mod_date = read_int(file, 2)
        crc = read_int(file, 4)
        compressed_size = read_int(file, 4)
        uncompressed_size = read_int(file, 4)
        filename_length = read_int(file, 2)
        extra_field_length = read_int(file, 2)
        comment_length = read_int(file, 2)
        disk_number_start = read_int(file, 2)
        internal_file_attrs = read_int(file, 2)
        external_file_attrs = read_int(file, 4)
        local_header_relative_offset = read_int(file, 4)
        filename = decode_name(read_exact(file, filename_length), flags, encoding)
        extra_field = read_exact(file, extra_field_length)
        comment = decode_name(read_exact(file, comment_length), flags, encoding)

        uncompressed_size, compressed_size, local_header_relative_offset = parse_zip64_extra(
            extra_field, uncompressed_size, compressed_size, local_header_relative_offset
        )

        return cls(
            version_made_by,
            platform,
            version_needed_to_extract,
            flags,
            compression_method,
            last_mod_time,
            last_mod_date,
            crc,
            compressed_size,
            uncompressed_size,
            filename_length,
            extra_field_length,
            comment_length,
            disk_number_start,
            internal_file_attrs,
            external_file_attrs,
            local_header_relative_offset,
            filename,
            extra_field,
            comment
        )

    def encode(self, encoding: str) -> bytes:
        byte_str: bytes = CD_HEADER_SIGNATURE
        byte_str += self.version_made_by.to_bytes(1, 'little')
        byte_str += self.platform.to_bytes(1, 'little')
        byte_str += self.version_needed_to_extract.to_bytes(2, 'little')
        byte_str += self.flags.to_bytes(2, 'little')
        byte_str += self.compression_method.to_bytes(2, 'little')
        byte_str += self.last_mod_time.to_bytes(2, 'little')
        byte_str += self.last_mod_date.to_bytes(2, 'little')
        byte_str += self.crc.to_bytes(4, 'little')
        byte_str += self.compressed_size.to_bytes(4, 'little')
        byte_str += self.uncompressed_size.to_bytes(4, 'little')
        byte_str += self.filename_length.to_bytes(2, 'little')
        byte_str += self.extra_field_length.to_bytes(2, 'little')
        byte_str += self.comment_length.to_bytes(2, 'little')
        byte_str += self.disk_number_start.to_bytes(2, 'little')
        byte_str += self.internal_file_attrs.to_bytes(2, 'little')
        byte_str += self.external_file_attrs.to_bytes(4, 'little')
        byte_str += self.local_header_relative_offset.to_bytes(4, 'little')
        byte_str += encode_name(self.filename, self.flags, encoding)
        byte_str += self.extra_field
        byte_str += encode_name(self.comment, self.flags, encoding)
        return byte_str


@dataclass
class CDEnd:
    """Contents of End of Central Directory."""

    disk_num: int
    disk_num_CD: int
    total_entries: int
    total_CD_entries: int
    sizeof_CD: int
    offset: int
    comment_length: int
    comment: str

    @classmethod
    def __init_raw__(cls, file: BinaryIO, encoding: str) -> 'CDEnd':
        disk_num = read_int(file, 2)
        disk_num_CD = read_int(file, 2)
        total_entries = read_int(file, 2)
        total_CD_entries = read_int(file, 2)
        sizeof_CD = read_int(file, 4)
        offset = read_int(file, 4)
        comment_length = read_int(file, 2)
        # Some writers cut the comment short, take whatever is left
        comment = file.read(comment_length).decode(encoding, errors='replace')

        return cls(
            disk_num,
            disk_num_CD,
            total_entries,
            total_CD_entries,
            sizeof_CD,
            offset,
            comment_length,
            comment
        )

    def encode(self, encoding: str) -> bytes:
        byte_str: bytes = CD_END_SIGNATURE
        byte_str += self.disk_num.to_bytes(2, 'little')
        byte_str += self.disk_num_CD.to_bytes(2, 'little')
        byte_str += self.total_entries.to_bytes(2, 'little')
        byte_str += self.total_CD_entries.to_bytes(2, 'little')
        byte_str += self.sizeof_CD.to_bytes(4, 'little')
        byte_str += self.offset.to_bytes(4, 'little')
        byte_str += self.comment_length.to_bytes(2, 'little')
        byte_str += self.comment.encode(encoding)
        return byte_str


@dataclass
class Zip64Locator:
    """Zip64 end of central directory locator. Stored right before End of Central Directory."""

    disk_num: int
    zip64_end_offset: int
    total_disks: int

    @classmethod
    def __init_raw__(cls, file: BinaryIO) -> 'Zip64Locator':
        disk_num = read_int(file, 4)
        zip64_end_offset = read_int(file, 8)
        total_disks = read_int(file, 4)
        return cls(disk_num, zip64_end_offset, total_disks)

    def encode(self) -> bytes:
        byte_str: bytes = ZIP64_LOCATOR_SIGNATURE
        byte_str += self.disk_num.to_bytes(4, 'little')
        byte_str += self.zip64_end_offset.to_bytes(8, 'little')
        byte_str += self.total_disks.to_bytes(4, 'little')
        return byte_str


@dataclass
class Zip64CDEnd:
    """Zip64 end of central directory record. Extensible data sector is ignored."""

    record_size: int
    version_made_by: int
    version_needed_to_extract: int
    disk_num: int
    disk_num_CD: int
    total_entries: int
    total_CD_entries: int
    sizeof_CD: int
    offset: int

    @classmethod
    def __init_raw__(cls, file: BinaryIO) -> 'Zip64CDEnd':
        record_size = read_int(file, 8)
        version_made_by = read_int(file, 2)
        version_needed_to_extract = read_int(file, 2)
        disk_num = read_int(file, 4)
        disk_num_CD = read_int(file, 4)
        total_entries = read_int(file, 8)
        total_CD_entries = read_int(file, 8)
        sizeof_CD = read_int(file, 8)
        offset = read_int(file, 8)

        return cls(
            record_size,
            version_made_by,
            version_needed_to_extract,
            disk_num,
            disk_num_CD,
            total_entries,
            total_CD_entries,
            sizeof_CD,
            offset
        )

    def encode(self) -> bytes:
        byte_str: bytes = ZIP64_CD_END_SIGNATURE
        byte_str += self.record_size.to_bytes(8, 'little')
        byte_str += self.version_made_by.to_bytes(2, 'little')
        byte_str += self.version_needed_to_extract.to_bytes(2, 'little')
        byte_str += self.disk_num.to_bytes(4, 'little')
        byte_str += self.disk_num_CD.to_bytes(4, 'little')
        byte_str += self.total_entries.to_bytes(8, 'little')
        byte_str += self.total_CD_entries.to_bytes(8, 'little')
        byte_str += self.sizeof_CD.to_bytes(8, 'little')
        byte_str += self.offset.to_bytes(8, 'little')
        return byte_str
