import logging
import os
from abc import abstractmethod, ABCMeta
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import date, time, datetime
from os import PathLike, makedirs
from os import path as os_path
from shutil import copyfileobj
from threading import Lock
from types import TracebackType
from typing import BinaryIO, Optional, Self

from .constants import FLAG_ENCRYPTED, FLAG_DATA_DESCRIPTOR, ZipEncryptions
from .exceptions import ShortRead, UnsafePath, UnzippyException

logger = logging.getLogger(__name__)

O_BINARY: int = getattr(os, 'O_BINARY', 0)


def dos_datetime(dos_time: int, dos_date: int) -> Optional[datetime]:
    """Convert MS-DOS time and date words. Returns None if they don't form a valid datetime."""

    # This conversion is based on java8 source code.
    try:
        decoded_time = time((dos_time >> 11) & 0x1F, (dos_time >> 5) & 0x3F, (dos_time << 1) & 0x3E)
        decoded_date = date((dos_date >> 9) + 1980, (dos_date >> 5) & 0xF, dos_date & 0x1F)
    except ValueError:
        return None
    return datetime.combine(decoded_date, decoded_time)


class ByteSource:
    """Random access reader over an archive that is shared between entries.

    Reads are serialized by a lock, so several entries can be decoded at the same time.
    """

    def __init__(self, file: BinaryIO, *, owned: bool = True):
        self._file: BinaryIO = file
        self._owned: bool = owned
        self._lock: Lock = Lock()
        with self._lock:
            self._size: int = file.seek(0, 2)

    @property
    def size(self) -> int:
        return self._size

    @property
    def closed(self) -> bool:
        return self._file.closed

    def read_at(self, offset: int, size: int) -> bytes:
        """Read up to ``size`` bytes starting at ``offset``."""
        with self._lock:
            self._file.seek(offset)
            return self._file.read(size)

    def section(self, offset: int, length: int) -> 'EntrySection':
        return EntrySection(self, offset, length)

    def close(self) -> None:
        """Close underlying file if it was opened by us."""
        if self._owned and not self._file.closed:
            self._file.close()


class EntrySection:
    """Byte range of a single entry inside a ``ByteSource``."""

    def __init__(self, source: ByteSource, offset: int, length: int):
        self.source: ByteSource = source
        self.offset: int = offset
        self.length: int = length

    def __len__(self) -> int:
        return self.length

    def read_all(self) -> bytes:
        """Read the whole range. Raises ShortRead if archive is truncated."""
        data = self.source.read_at(self.offset, self.length)
        if len(data) != self.length:
            raise ShortRead(f'Expected {self.length} bytes at offset {self.offset}, got {len(data)}.')
        return data


@dataclass
class Entry:
    """Representation of a single archive member.

    **Attributes**:
        * filename (`str`): Name of the file. Folders end with '/'.
        * is_dir (`bool`): True if file is a directory.
        * version_needed_to_extract (`int`): Minimal version of zip required to unpack.
        * flags (`int`): General purpose bit flag.
        * compression_method (`int`): Compression method id.
        * compression_name (`str`): Name of the compression method, 'Unknown' if it has no decoder.
        * crc (`int`): CRC of the file.
        * compressed_size (`int`): Size of the stored data, encryption header included.
        * uncompressed_size (`int`): Uncompressed size of the file.
        * last_mod_time (`datetime`, optional): Datetime of last modification of the file.
        None if time is not specified.
        * raw_mod_time (`int`): MS-DOS time word of last modification.
        * mode (`int`): Permission bits applied to extracted file.
        * header_offset (`int`): Offset of the local file header.
        * comment (`str`): File comment.
    """

    filename: str
    is_dir: bool
    version_needed_to_extract: int
    flags: int
    compression_method: int
    compression_name: str
    crc: int
    compressed_size: int
    uncompressed_size: int
    last_mod_time: Optional[datetime]
    raw_mod_time: int
    mode: int
    header_offset: int
    comment: str = ''

    @property
    def encrypted(self) -> bool:
        return bool(self.flags & FLAG_ENCRYPTED)

    @property
    def encryption_method(self) -> ZipEncryptions:
        return 'ZipCrypto' if self.encrypted else 'Unencrypted'

    @property
    def check_byte(self) -> int:
        """Last byte of the decrypted encryption header.

        High byte of the CRC, or of the modification time if CRC was not known
        when the header was written (data descriptor is present).
        """
        if self.flags & FLAG_DATA_DESCRIPTOR:
            return (self.raw_mod_time >> 8) & 0xFF
        return (self.crc >> 24) & 0xFF


class Archive(metaclass=ABCMeta):
    """Base class for all archives. Holds the archive file open until closed."""

    def __init__(self, source: ByteSource, comment: str, encoding: str):
        self._source: ByteSource = source
        self._comment: str = comment
        self._encoding: str = encoding

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_traceback: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        self._source.close()

    @property
    def closed(self) -> bool:
        return self._source.closed

    @property
    def comment(self) -> str:
        return self._comment

    @property
    def encoding(self) -> str:
        return self._encoding

    @abstractmethod
    def infolist(self) -> list[Entry]:
        """Entries of the archive in central directory order."""

    @abstractmethod
    def decode(self, entry: Entry) -> BinaryIO:
        """Return a readable stream with fully decoded ``entry`` content."""

    def namelist(self) -> list[str]:
        return [entry.filename for entry in self.infolist()]

    @staticmethod
    def target_path(entry: Entry, path: str | PathLike[str]) -> str:
        """Map ``entry`` name into ``path``. Raises UnsafePath for names that would escape it."""

        name = entry.filename.replace('\\', '/')
        parts = [part for part in name.split('/') if part not in ('', '.')]
        if name.startswith('/') or '..' in parts or (parts and len(parts[0]) == 2 and parts[0][1] == ':'):
            raise UnsafePath(f"Refusing to extract '{entry.filename}' outside of the destination folder.")
        return os_path.join(path, *parts)

    def extract(self, entry: Entry, path: str | PathLike[str] = '.') -> str:
        """Extract single ``entry`` to given ``path``. Returns path of the extracted file."""

        target = self.target_path(entry, path)
        if entry.is_dir:
            makedirs(target, exist_ok=True)
            return target

        makedirs(os_path.dirname(target) or '.', exist_ok=True)
        contents = self.decode(entry)
        fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC | O_BINARY, entry.mode)
        with open(fd, 'wb') as f, contents:
            copyfileobj(contents, f)
        logger.info('Extracted %s', target)
        return target

    def extract_all(
            self,
            path: str | PathLike[str] = '.',
            *,
            continue_on_error: bool = False,
            workers: int = 1
    ) -> list[tuple[Entry, Exception]]:
        """Extract all files to given ``path``. If not specified, extracts to current working directory.

        First error aborts extraction unless ``continue_on_error`` is set, in which case
        failed entries are skipped and returned together with their errors.

        If ``workers`` is greater than 1, entries are decoded in a thread pool.
        """

        failures: list[tuple[Entry, Exception]] = []
        entries = self.infolist()

        def skip(entry: Entry, e: Exception) -> None:
            if not continue_on_error:
                raise e
            logger.warning('Skipping %s: %s', entry.filename, e)
            failures.append((entry, e))

        # Folders go first so that their files never race the directory creation
        files: list[Entry] = []
        for entry in entries:
            if not entry.is_dir:
                files.append(entry)
                continue
            try:
                self.extract(entry, path)
            except (UnzippyException, OSError) as e:
                skip(entry, e)

        if workers > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = {pool.submit(self.extract, entry, path): entry for entry in files}
                try:
                    for future in as_completed(futures):
                        try:
                            future.result()
                        except (UnzippyException, OSError) as e:
                            skip(futures[future], e)
                except BaseException:
                    for pending in futures:
                        pending.cancel()
                    raise
        else:
            for entry in files:
                try:
                    self.extract(entry, path)
                except (UnzippyException, OSError) as e:
                    skip(entry, e)

        return failures
