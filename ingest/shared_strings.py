import logging
import zipfile
import zlib
from typing import List
from xml.etree import ElementTree as ET

from .context import SharedStringTable
from .errors import ContainerError

logger = logging.getLogger(__name__)

SHARED_STRINGS_PART = "xl/sharedStrings.xml"


def local_name(tag: str) -> str:
    """Strip the ``{namespace}`` prefix ElementTree puts on tags"""
    return tag.rsplit("}", 1)[-1]


def element_text(element: ET.Element) -> str:
    """
    Text of an ``<si>`` or ``<is>`` element: its direct ``<t>`` or the
    concatenated ``<t>`` of its rich-text runs. Phonetic runs are ignored.
    """
    parts: List[str] = []
    for child in element:
        name = local_name(child.tag)
        if name == "t":
            return child.text or ""
        if name == "r":
            for run_child in child:
                if local_name(run_child.tag) == "t":
                    parts.append(run_child.text or "")
    return "".join(parts)


def parse_shared_strings(payload: bytes) -> SharedStringTable:
    """
    Parse a sharedStrings.xml payload.

    Raises:
        ContainerError: The payload is not well-formed XML
    """
    try:
        root = ET.fromstring(payload)
    except ET.ParseError as e:
        raise ContainerError(f"Failed to parse shared strings: {e}", part=SHARED_STRINGS_PART) from e

    strings = [element_text(si) for si in root if local_name(si.tag) == "si"]
    return SharedStringTable(strings)


def load_shared_strings(archive: zipfile.ZipFile) -> SharedStringTable:
    """
    Load the workbook's shared string pool, or an empty table when the part is absent.

    Args:
        archive: Open OOXML container

    Returns:
        SharedStringTable: Immutable pool for this workbook
    """
    if SHARED_STRINGS_PART not in archive.namelist():
        logger.debug("Workbook has no shared strings part")
        return SharedStringTable()

    try:
        payload = archive.read(SHARED_STRINGS_PART)
    except (zipfile.BadZipFile, zlib.error, NotImplementedError, OSError) as e:
        raise ContainerError(f"Failed to read shared strings: {e}", part=SHARED_STRINGS_PART) from e

    table = parse_shared_strings(payload)
    logger.debug("Loaded shared strings", extra={"count": len(table)})
    return table
