import logging
import struct
from enum import Enum
from typing import Optional

from .errors import EmptyInputError, UnsupportedFormatError

logger = logging.getLogger(__name__)

ZIP_MAGIC = b"PK\x03\x04"

OOXML_EXTENSIONS = (".xlsx", ".xlsm")
LEGACY_EXTENSIONS = (".xls",)

# First little-endian word of the file
RAW_STREAM_SIGNATURES = (0x0809, 0x0805)
OLE_SIGNATURES = (0xD0CF, 0xCFD0)


class SpreadsheetFormat(str, Enum):
    OOXML = "ooxml"
    LEGACY_RAW = "legacy_raw_record_stream"
    LEGACY_OLE = "legacy_ole_wrapped"
    UNSUPPORTED = "unsupported"


def normalize_extension(extension: Optional[str]) -> Optional[str]:
    if not extension:
        return None
    extension = extension.strip().lower()
    return extension if extension.startswith(".") else f".{extension}"


def leading_word(data: bytes) -> int:
    if len(data) < 2:
        raise EmptyInputError(f"Need at least 2 bytes to read a signature, got {len(data)}")
    return struct.unpack_from("<H", data, 0)[0]


def classify_word(word: int) -> SpreadsheetFormat:
    if word in RAW_STREAM_SIGNATURES:
        return SpreadsheetFormat.LEGACY_RAW
    if word in OLE_SIGNATURES:
        return SpreadsheetFormat.LEGACY_OLE
    return SpreadsheetFormat.UNSUPPORTED


def check_extension(extension: Optional[str]) -> Optional[str]:
    """
    Reject extensions that are neither OOXML nor legacy before any byte is read.

    Returns:
        The normalized extension, or None when no extension was given
    """
    extension = normalize_extension(extension)
    if extension is not None and extension not in OOXML_EXTENSIONS + LEGACY_EXTENSIONS:
        raise UnsupportedFormatError(
            f"Unsupported file format: {extension} (only .xlsx and .xls files are supported)",
            extension=extension,
        )
    return extension


def sniff_format(data: bytes, extension: Optional[str] = None) -> SpreadsheetFormat:
    """
    Classify spreadsheet bytes into one of the supported families.

    ``.xlsx`` is OOXML without looking at the bytes. For ``.xls`` or no
    extension the ZIP magic is checked first, so a modern workbook saved under
    a legacy name still decodes, then the leading 16-bit word decides.

    Args:
        data: Raw file bytes
        extension: Optional file extension, with or without the leading dot

    Returns:
        SpreadsheetFormat: OOXML, LEGACY_RAW or LEGACY_OLE

    Raises:
        UnsupportedFormatError: Unknown extension or signature
        EmptyInputError: Too few bytes to hold a signature
    """
    extension = check_extension(extension)

    if extension in OOXML_EXTENSIONS:
        return SpreadsheetFormat.OOXML

    if data[:4] == ZIP_MAGIC:
        return SpreadsheetFormat.OOXML

    word = leading_word(data)
    detected = classify_word(word)
    if detected is SpreadsheetFormat.UNSUPPORTED:
        logger.warning("Unrecognized spreadsheet signature", extra={"signature": f"0x{word:04X}", "extension": extension})
        raise UnsupportedFormatError(
            f"Unsupported spreadsheet signature 0x{word:04X}",
            signature=word,
            extension=extension,
        )

    logger.debug("Detected spreadsheet format", extra={"format": detected.value, "signature": f"0x{word:04X}"})
    return detected
