import logging
import struct
from typing import NamedTuple, Optional

from .errors import NotFoundError
from .signature import RAW_STREAM_SIGNATURES

logger = logging.getLogger(__name__)

# Sector-aligned offsets where writers usually place the workbook stream
OLE_PROBE_OFFSETS = (512, 1024, 2048, 4096)
OLE_SCAN_STRIDE = 512


class StreamLocation(NamedTuple):
    offset: int
    method: str  # "fixed" or "scan"


def is_bof_at(data: bytes, offset: int) -> bool:
    """True when the little-endian word at ``offset`` is a BIFF5/BIFF8 BOF signature"""
    if offset < 0 or offset + 2 > len(data):
        return False
    return struct.unpack_from("<H", data, offset)[0] in RAW_STREAM_SIGNATURES


def _scan(data: bytes) -> Optional[int]:
    for offset in range(0, len(data), OLE_SCAN_STRIDE):
        if is_bof_at(data, offset):
            return offset
    return None


def locate_record_stream(data: bytes) -> StreamLocation:
    """
    Find the legacy record stream embedded in a compound document.

    This is a heuristic, not a directory walk: the fixed sector offsets are
    probed first, then every 512-byte boundary of the buffer. A match is the
    BOF signature word alone; whatever follows it is left to the record reader.

    Args:
        data: Bytes starting with a compound-document signature

    Returns:
        StreamLocation: Offset of the embedded BOF record and how it was found

    Raises:
        NotFoundError: No record stream signature anywhere in the buffer
    """
    for offset in OLE_PROBE_OFFSETS:
        if is_bof_at(data, offset):
            logger.debug("Found embedded record stream at fixed offset", extra={"offset": offset})
            return StreamLocation(offset, "fixed")

    offset = _scan(data)
    if offset is not None:
        logger.debug("Found embedded record stream by stride scan", extra={"offset": offset})
        return StreamLocation(offset, "scan")

    raise NotFoundError(
        f"No embedded workbook stream found in {len(data)} byte compound document",
        offset=len(data),
    )
