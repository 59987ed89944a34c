import logging
import posixpath
import re
import zipfile
import zlib
from typing import Dict, List, Optional, Tuple
from xml.etree import ElementTree as ET

from .context import DecodeContext, SharedStringTable
from .errors import ContainerError, EmptyInputError, NotFoundError
from .shared_strings import element_text, load_shared_strings, local_name
from .table import Table, build_table

logger = logging.getLogger(__name__)

WORKBOOK_PART = "xl/workbook.xml"
WORKBOOK_RELS_PART = "xl/_rels/workbook.xml.rels"
WORKSHEETS_DIR = "xl/worksheets/"
DEFAULT_SHEET_PART = "sheet1.xml"

_CELL_REF = re.compile(r"([A-Za-z]{1,3})[0-9]*")


def _read_xml(archive: zipfile.ZipFile, part: str) -> ET.Element:
    try:
        return ET.fromstring(archive.read(part))
    except ET.ParseError as e:
        raise ContainerError(f"Failed to parse {part}: {e}", part=part) from e
    except (zipfile.BadZipFile, zlib.error, NotImplementedError, OSError) as e:
        raise ContainerError(f"Failed to read {part}: {e}", part=part) from e


def _attribute(element: ET.Element, name: str) -> Optional[str]:
    """Attribute lookup that ignores the namespace prefix (``r:id`` -> ``id``)"""
    for key, value in element.attrib.items():
        if local_name(key) == name:
            return value
    return None


def workbook_sheets(archive: zipfile.ZipFile) -> List[Tuple[str, str]]:
    """
    List the workbook's sheets in declaration order as (sheet name, part path).

    Returns an empty list when the workbook or its relationships part is missing;
    the caller then falls back to matching worksheet parts by file name.
    """
    names = set(archive.namelist())
    if WORKBOOK_PART not in names or WORKBOOK_RELS_PART not in names:
        return []

    targets: Dict[str, str] = {}
    for rel in _read_xml(archive, WORKBOOK_RELS_PART):
        rel_id, target = rel.get("Id"), rel.get("Target")
        if rel_id and target:
            if target.startswith("/"):
                targets[rel_id] = target.lstrip("/")
            else:
                targets[rel_id] = posixpath.normpath(posixpath.join("xl", target))

    sheets = []
    for element in _read_xml(archive, WORKBOOK_PART).iter():
        if local_name(element.tag) != "sheet":
            continue
        part = targets.get(_attribute(element, "id") or "")
        if part:
            sheets.append((element.get("name", ""), part))
    return sheets


def _match_part(names: List[str], file_name: str) -> Optional[str]:
    candidates = [n for n in names if n == file_name or n.endswith("/" + file_name)]
    # Prefer real worksheet parts over anything else with the same file name
    candidates.sort(key=lambda n: not n.startswith(WORKSHEETS_DIR))
    return candidates[0] if candidates else None


def resolve_sheet_part(archive: zipfile.ZipFile, sheet_name: Optional[str] = None) -> Tuple[str, str]:
    """
    Find the worksheet part to decode.

    Without a selector (None or "") the workbook's first sheet is used. A selector first
    matches a workbook sheet name (case-insensitive), then a part whose file
    name is ``<selector>.xml``.

    Returns:
        Tuple of (sheet name, part path)

    Raises:
        NotFoundError: No matching worksheet part exists
    """
    names = archive.namelist()
    sheets = workbook_sheets(archive)

    if not sheet_name:
        if sheets and sheets[0][1] in names:
            return sheets[0]
        file_name = DEFAULT_SHEET_PART
    else:
        for name, part in sheets:
            if name.lower() == sheet_name.lower() and part in names:
                return name, part
        file_name = f"{sheet_name.lower()}.xml"

    part = _match_part(names, file_name)
    if part is None:
        requested = sheet_name or file_name
        raise NotFoundError(f"Worksheet '{requested}' not found", sheet_name=requested)
    return sheet_name or posixpath.splitext(posixpath.basename(part))[0], part


def column_index(reference: Optional[str]) -> Optional[int]:
    """Zero-based column of an A1-style reference ("C7" -> 2)"""
    if not reference:
        return None
    match = _CELL_REF.fullmatch(reference.strip())
    if not match:
        return None
    index = 0
    for char in match.group(1).upper():
        index = index * 26 + (ord(char) - ord("A") + 1)
    return index - 1


def cell_text(cell: ET.Element, shared_strings: SharedStringTable) -> str:
    """Raw text of a ``<c>`` element according to its declared type"""
    cell_type = cell.get("t", "n")
    value = ""
    inline = None
    for child in cell:
        name = local_name(child.tag)
        if name == "v":
            value = child.text or ""
        elif name == "is":
            inline = child

    if cell_type == "s":
        try:
            resolved = shared_strings.resolve(int(value.strip()))
        except ValueError:
            resolved = None
        if resolved is not None:
            return resolved
        logger.debug("Shared string index out of range, keeping raw text",
                     extra={"cell": cell.get("r"), "index": value, "table_size": len(shared_strings)})
        return value

    if cell_type == "inlineStr":
        return element_text(inline) if inline is not None else value

    if cell_type == "b":
        return {"1": "true", "0": "false"}.get(value.strip(), value)

    return value


def row_texts(row: ET.Element, shared_strings: SharedStringTable) -> List[Optional[str]]:
    """Place each cell of a ``<row>`` at its referenced column, or sequentially without a reference"""
    placed: Dict[int, str] = {}
    next_column = 0
    for cell in row:
        if local_name(cell.tag) != "c":
            continue
        index = column_index(cell.get("r"))
        if index is None:
            index = next_column
        placed[index] = cell_text(cell, shared_strings)
        next_column = index + 1

    if not placed:
        return []
    texts: List[Optional[str]] = [None] * (max(placed) + 1)
    for index, text in placed.items():
        texts[index] = text
    return texts


def read_worksheet(archive: zipfile.ZipFile, part: str, shared_strings: SharedStringTable,
                   sheet_name: Optional[str] = None) -> Table:
    root = _read_xml(archive, part)

    rows = []
    for element in root:
        if local_name(element.tag) != "sheetData":
            continue
        for row in element:
            if local_name(row.tag) == "row":
                rows.append(row_texts(row, shared_strings))

    if not rows:
        raise EmptyInputError(f"Worksheet '{sheet_name or part}' is empty", sheet_name=sheet_name)

    return build_table(rows)


def read_xlsx(context: DecodeContext) -> Table:
    """
    Decode one worksheet of an OOXML container.

    Args:
        context: Decode context whose source is a path or file-like object

    Returns:
        Table: Header from the first row, typed data rows

    Raises:
        ContainerError: The container or a required part cannot be opened or parsed
        NotFoundError: The selected worksheet does not exist
        EmptyInputError: The worksheet has no rows
    """
    try:
        archive = context.open_archive()
    except (zipfile.BadZipFile, OSError) as e:
        raise ContainerError(f"Failed to open Excel file: {e}") from e

    context.shared_strings = load_shared_strings(archive)
    sheet_name, part = resolve_sheet_part(archive, context.sheet_name)
    logger.info("Reading worksheet", extra={"sheet": sheet_name, "part": part})

    table = read_worksheet(archive, part, context.shared_strings, sheet_name)
    context.sheet_name = sheet_name
    return table
