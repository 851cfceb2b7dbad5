import logging
from io import BytesIO, IOBase
from os import PathLike
from typing import BinaryIO, Optional

from .._base_classes import Archive, ByteSource, Entry, dos_datetime
from ..constants import *
from ..exceptions import *
from ._zip_algorythms import Decoders, Decompressor
from ._zipfile import (
    CDHeader, CDEnd, LocalHeader, Zip64Locator, Zip64CDEnd,
    CD_HEADER_SIGNATURE, CD_END_SIGNATURE, LOCAL_HEADER_SIGNATURE,
    ZIP64_CD_END_SIGNATURE, ZIP64_LOCATOR_SIGNATURE,
    CD_END_SIZE, LOCAL_HEADER_SIZE, ZIP64_LOCATOR_SIZE
)

logger = logging.getLogger(__name__)

UNIX_PLATFORM: int = 3
DOS_DIRECTORY_ATTR: int = 0x10
DEFAULT_FILE_MODE: int = 0o644
DEFAULT_DIR_MODE: int = 0o755
ZIP64_CD_END_SIZE: int = 56


def find_cd_end(source: ByteSource, encoding: str) -> tuple[CDEnd, int]:
    """Locate End of Central Directory. Returns the record and its offset.

    Record is searched backwards since it may be followed by a comment of up to 65535 bytes.
    """

    if source.size < CD_END_SIZE:
        raise BadFile('File should be in .ZIP format.')

    tail_start = max(0, source.size - CD_END_SIZE - INT16_MAX)
    tail = source.read_at(tail_start, source.size - tail_start)

    i = tail.rfind(CD_END_SIGNATURE, 0, len(tail) - CD_END_SIZE + 4)
    if i == -1:
        raise BadFile('File should be in .ZIP format.')

    cd_end = CDEnd.__init_raw__(BytesIO(tail[i + 4:]), encoding)
    return cd_end, tail_start + i


def find_zip64_cd_end(source: ByteSource, cd_end_offset: int) -> Optional[tuple[Zip64CDEnd, int]]:
    """Read Zip64 end of central directory if its locator precedes ``cd_end_offset``."""

    if cd_end_offset < ZIP64_LOCATOR_SIZE:
        return None
    raw = source.read_at(cd_end_offset - ZIP64_LOCATOR_SIZE, ZIP64_LOCATOR_SIZE)
    if raw[:4] != ZIP64_LOCATOR_SIGNATURE:
        return None

    locator = Zip64Locator.__init_raw__(BytesIO(raw[4:]))
    if locator.total_disks > 1:
        raise BadFile('Multi-volume archives are not supported.')

    # Locator keeps offset relative to the archive start which may be moved by prepended data,
    # so the record is expected right before the locator.
    offset = cd_end_offset - ZIP64_LOCATOR_SIZE - ZIP64_CD_END_SIZE
    raw = source.read_at(offset, ZIP64_CD_END_SIZE)
    if raw[:4] != ZIP64_CD_END_SIGNATURE:
        raise BadFile('Zip64 end of central directory is missing.')
    return Zip64CDEnd.__init_raw__(BytesIO(raw[4:])), offset


def read_cd_headers(source: ByteSource, encoding: str) -> tuple[list[CDHeader], CDEnd, int]:
    """Read all central directory headers.

    Returns headers, End of Central Directory and the amount of bytes
    prepended to the archive (self-extracting stubs and such).
    """

    cd_end, cd_end_offset = find_cd_end(source, encoding)
    if cd_end.disk_num != 0 or cd_end.disk_num_CD != 0:
        raise BadFile('Multi-volume archives are not supported.')

    total_entries, sizeof_cd, cd_offset, cd_stop = cd_end.total_CD_entries, cd_end.sizeof_CD, cd_end.offset, cd_end_offset

    zip64 = find_zip64_cd_end(source, cd_end_offset)
    if zip64 is not None:
        zip64_end, cd_stop = zip64
        total_entries, sizeof_cd, cd_offset = zip64_end.total_CD_entries, zip64_end.sizeof_CD, zip64_end.offset

    concat = cd_stop - sizeof_cd - cd_offset
    if concat < 0:
        raise BadFile('Central directory offset is out of bounds.')

    raw = source.read_at(cd_offset + concat, sizeof_cd)
    if len(raw) != sizeof_cd:
        raise BadFile('Central directory is truncated.')

    stream = BytesIO(raw)
    headers: list[CDHeader] = []
    for _ in range(total_entries):
        if stream.read(4) != CD_HEADER_SIGNATURE:
            raise BadFile('Bad central directory header signature.')
        headers.append(CDHeader.__init_raw__(stream, encoding))

    return headers, cd_end, concat


class ZipFile(Archive):
    """Class representing the zip file and its contents. Use ``ZipFile.open`` to initialise it.

    Archive file stays open until ``close`` is called or the ``with`` block is left.
    """

    def __init__(
            self,
            source: ByteSource,
            entries: list[Entry],
            cd_end: CDEnd,
            decoders: Decoders,
            encoding: str
    ):
        super().__init__(source, cd_end.comment, encoding)
        self._entries: list[Entry] = entries
        self._endof_CD: CDEnd = cd_end
        self._decoders: Decoders = decoders

    @staticmethod
    def open(
            f: int | str | bytes | PathLike[str] | PathLike[bytes] | BinaryIO,
            pwd: Optional[str | bytes] = None,
            encoding: str = 'utf-8',
            *,
            verify: bool = False
    ) -> 'ZipFile':
        """Open zip file and return its representation.

        ``f`` must be a filename, pathlike string, file descriptor or a seekable binary data stream.
        Streams are not closed by the archive.

        ``pwd`` enables ZipCrypto decryption of every entry. ``str`` passwords are encoded with ``encoding``,
        which is also used to decode filenames and comments not marked as UTF-8.

        If ``verify`` is True, the last byte of each encryption header is compared with
        the value derived from entry CRC and WrongPassword is raised on mismatch.
        Otherwise wrong password simply produces garbage or a DecompressionError.

        Raises BadFile exception if target file is damaged and inbuild open function exceptions.
        """

        if isinstance(f, (int, str, bytes, PathLike)):
            source = ByteSource(open(f, 'rb'))
        elif isinstance(f, IOBase):
            source = ByteSource(f, owned=False)
        else:
            raise TypeError(f"Expected argument f to be int, str, bytes, os.PathLike or a binary stream, got '{type(f).__name__}' instead.")

        if isinstance(pwd, str):
            pwd = pwd.encode(encoding)

        decoders = Decoders(pwd, verify=verify)
        try:
            headers, cd_end, concat = read_cd_headers(source, encoding)
            entries = [ZipFile._to_entry(header, concat, decoders) for header in headers]
        except BaseException:
            source.close()
            raise

        logger.debug('Opened archive with %d entries (%s)', len(entries), 'encrypted' if pwd is not None else 'plain')
        return ZipFile(source, entries, cd_end, decoders, encoding)

    @staticmethod
    def _to_entry(header: CDHeader, concat: int, decoders: Decoders) -> Entry:
        is_dir = header.filename.endswith('/') or bool(header.external_file_attrs & DOS_DIRECTORY_ATTR)

        mode = (header.external_file_attrs >> 16) & 0o7777
        if header.platform != UNIX_PLATFORM or mode == 0:
            mode = DEFAULT_DIR_MODE if is_dir else DEFAULT_FILE_MODE

        return Entry(
            filename=header.filename,
            is_dir=is_dir,
            version_needed_to_extract=header.version_needed_to_extract,
            flags=header.flags,
            compression_method=header.compression_method,
            compression_name=decoders.name_of(header.compression_method),
            crc=header.crc,
            compressed_size=header.compressed_size,
            uncompressed_size=header.uncompressed_size,
            last_mod_time=dos_datetime(header.last_mod_time, header.last_mod_date),
            raw_mod_time=header.last_mod_time,
            mode=mode,
            header_offset=header.local_header_relative_offset + concat,
            comment=header.comment
        )

    @property
    def total_entries(self) -> int:
        return len(self._entries)

    @property
    def pwd(self) -> Optional[bytes]:
        return self._decoders.pwd

    def infolist(self) -> list[Entry]:
        return list(self._entries)

    def getinfo(self, name: str) -> Entry:
        """Return entry with given ``name``. Raises FileNotFound if there is none."""
        for entry in self._entries:
            if entry.filename == name:
                return entry
        raise FileNotFound(f"File '{name}' doesn't exist.")

    def register_decompressor(self, method: int, name: str, decompressor: Decompressor) -> None:
        """Use ``decompressor`` for entries compressed with ``method`` in this archive only."""
        self._decoders.register(method, name, decompressor)
        for entry in self._entries:
            if entry.compression_method == method:
                entry.compression_name = name

    def _local_header(self, entry: Entry) -> LocalHeader:
        raw = self._source.read_at(entry.header_offset, LOCAL_HEADER_SIZE)
        if len(raw) != LOCAL_HEADER_SIZE or raw[:4] != LOCAL_HEADER_SIGNATURE:
            raise BadFile(f"Bad local header of '{entry.filename}'.")

        variable_size = int.from_bytes(raw[26:28], 'little') + int.from_bytes(raw[28:30], 'little')
        raw += self._source.read_at(entry.header_offset + LOCAL_HEADER_SIZE, variable_size)
        return LocalHeader.__init_raw__(BytesIO(raw[4:]), self._encoding)

    def decode(self, entry: Entry | str) -> BinaryIO:
        """Return a stream with decoded content of ``entry``.

        Raises UnsupportedMethod if entry is compressed or encrypted with unsupported algorythm.
        """

        if isinstance(entry, str):
            entry = self.getinfo(entry)
        if self.closed:
            raise ValueError('Attempt to read from closed archive.')
        if entry.is_dir:
            return BytesIO(b'')

        if entry.flags & FLAG_STRONG_ENCRYPTION:
            raise UnsupportedMethod(f"'{entry.filename}' uses strong encryption which is not supported.")
        if entry.flags & FLAG_CD_ENCRYPTED:
            raise UnsupportedMethod('Central Directory decryption is not supported.')

        if self.pwd is not None and not entry.encrypted:
            logger.warning("'%s' is not encrypted but will be decrypted with given password.", entry.filename)
        elif self.pwd is None and entry.encrypted:
            logger.warning("'%s' is encrypted but no password was given.", entry.filename)

        header = self._local_header(entry)
        section = self._source.section(entry.header_offset + header.size, entry.compressed_size)
        return BytesIO(self._decoders.decode(entry, section))

    def read(self, name: str) -> bytes:
        """Return decoded content of the file ``name``."""
        with self.decode(name) as f:
            return f.read()
