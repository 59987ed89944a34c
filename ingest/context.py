import logging
import struct
import zipfile
from typing import NamedTuple, Optional, Sequence

from .errors import MalformedRecordError

logger = logging.getLogger(__name__)

RECORD_HEADER_SIZE = 4

# Largest record payload a BIFF8 writer emits
MAX_RECORD_SIZE = 8224


class RawRecord(NamedTuple):
    type: int
    size: int
    payload: bytes
    offset: int


class SharedStringTable:
    """Read-only index -> string pool, built once per workbook"""

    def __init__(self, strings: Sequence[str] = ()):
        self._strings = tuple(strings)

    def resolve(self, index: int) -> Optional[str]:
        if 0 <= index < len(self._strings):
            return self._strings[index]
        return None

    def __len__(self) -> int:
        return len(self._strings)

    def __iter__(self):
        return iter(self._strings)

    def __repr__(self) -> str:
        return f"SharedStringTable(size={len(self._strings)})"


class ByteCursor:
    """Sequential little-endian reader over an in-memory buffer"""

    def __init__(self, data: bytes, offset: int = 0):
        self.data = data
        self.position = offset

    @property
    def remaining(self) -> int:
        return max(len(self.data) - self.position, 0)

    def peek_type(self) -> Optional[int]:
        """Type of the next record without consuming it, None at end of stream"""
        if self.remaining < RECORD_HEADER_SIZE:
            return None
        return struct.unpack_from("<H", self.data, self.position)[0]

    def read_record(self) -> Optional[RawRecord]:
        """
        Consume one type/size/payload record.

        Returns None at a clean end of stream (fewer than 4 bytes left).

        Raises:
            MalformedRecordError: The declared size runs past the end of the buffer.
                The cursor is left at the end of the buffer.
        """
        if self.remaining < RECORD_HEADER_SIZE:
            return None

        offset = self.position
        record_type, size = struct.unpack_from("<HH", self.data, offset)
        self.position += RECORD_HEADER_SIZE

        if size > self.remaining:
            available = self.remaining
            self.position = len(self.data)
            raise MalformedRecordError(
                f"Record 0x{record_type:04X} at offset {offset} declares {size} bytes but only {available} remain",
                offset=offset,
                record_type=record_type,
                size=size,
            )

        payload = bytes(self.data[self.position:self.position + size])
        self.position += size
        return RawRecord(record_type, size, payload, offset)


class DecodeContext:
    """
    Per-call decode state: the open container, the shared string table and the
    byte cursor. Use as a context manager so the container is always closed.
    """

    def __init__(self, source=None, sheet_name: Optional[str] = None):
        self.source = source
        self.sheet_name = sheet_name
        self.archive: Optional[zipfile.ZipFile] = None
        self.shared_strings = SharedStringTable()
        self.cursor: Optional[ByteCursor] = None

    def open_archive(self) -> zipfile.ZipFile:
        self.archive = zipfile.ZipFile(self.source)
        return self.archive

    def __enter__(self) -> "DecodeContext":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.archive is not None:
            self.archive.close()
            self.archive = None
        self.cursor = None
        return False
