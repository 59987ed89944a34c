"""
Pytest configuration file.

This file is automatically loaded by pytest and provides global test configuration.
It ensures the project's source directory is added to the Python path so that
modules can be imported properly during test execution, and provides fixtures
that synthesize spreadsheet files in memory.
"""
import io
import os
import struct
import sys
import zipfile
from xml.sax.saxutils import escape

import pytest

# Add the current directory to the Python path
# This ensures imports work correctly when running tests
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

MAIN_NS = "http://schemas.openxmlformats.org/spreadsheetml/2006/main"
REL_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
PKG_REL_NS = "http://schemas.openxmlformats.org/package/2006/relationships"


def _column_letter(index):
    letters = ""
    index += 1
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(65 + remainder) + letters
    return letters


def _cell_xml(row_number, column, value):
    """A value is a raw string, or a (type, text) tuple for explicit cell types"""
    ref = f"{_column_letter(column)}{row_number}"
    if isinstance(value, tuple):
        cell_type, text = value
        if cell_type == "inlineStr":
            return f'<c r="{ref}" t="inlineStr"><is><t>{escape(text)}</t></is></c>'
        return f'<c r="{ref}" t="{cell_type}"><v>{escape(text)}</v></c>'
    return f'<c r="{ref}" t="inlineStr"><is><t>{escape(value)}</t></is></c>'


def sheet_xml(rows):
    body = []
    for row_index, row in enumerate(rows, start=1):
        cells = "".join(_cell_xml(row_index, col, value) for col, value in enumerate(row) if value is not None)
        body.append(f'<row r="{row_index}">{cells}</row>')
    return (f'<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
            f'<worksheet xmlns="{MAIN_NS}"><sheetData>{"".join(body)}</sheetData></worksheet>')


def shared_strings_xml(strings):
    items = "".join(f"<si><t>{escape(s)}</t></si>" for s in strings)
    return f'<?xml version="1.0" encoding="UTF-8"?><sst xmlns="{MAIN_NS}" count="{len(strings)}">{items}</sst>'


def build_xlsx(sheets, shared_strings=None, with_workbook=True, extra_parts=None):
    """
    Build an .xlsx container in memory.

    Args:
        sheets: List of (sheet name, rows) in workbook order
        shared_strings: Optional list for xl/sharedStrings.xml
        with_workbook: Write workbook.xml and its relationships
        extra_parts: Mapping of part name to raw content, written as-is

    Returns:
        bytes: The ZIP container
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        sheet_entries, rel_entries = [], []
        for number, (name, rows) in enumerate(sheets, start=1):
            archive.writestr(f"xl/worksheets/sheet{number}.xml", sheet_xml(rows))
            sheet_entries.append(f'<sheet name="{escape(name)}" sheetId="{number}" r:id="rId{number}"/>')
            rel_entries.append(f'<Relationship Id="rId{number}" Type="{REL_NS}/worksheet" '
                               f'Target="worksheets/sheet{number}.xml"/>')
        if with_workbook:
            archive.writestr("xl/workbook.xml",
                             f'<workbook xmlns="{MAIN_NS}" xmlns:r="{REL_NS}"><sheets>{"".join(sheet_entries)}</sheets></workbook>')
            archive.writestr("xl/_rels/workbook.xml.rels",
                             f'<Relationships xmlns="{PKG_REL_NS}">{"".join(rel_entries)}</Relationships>')
        if shared_strings is not None:
            archive.writestr("xl/sharedStrings.xml", shared_strings_xml(shared_strings))
        for part, content in (extra_parts or {}).items():
            archive.writestr(part, content)
    return buffer.getvalue()


def corrupt_part(data, part):
    """Overwrite the compressed bytes of one archive member with an invalid deflate stream"""
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        info = archive.getinfo(part)
    name_length, extra_length = struct.unpack_from("<HH", data, info.header_offset + 26)
    start = info.header_offset + 30 + name_length + extra_length
    buffer = bytearray(data)
    buffer[start:start + info.compress_size] = b"\xff" * info.compress_size
    return bytes(buffer)


def biff_record(record_type, payload=b""):
    return struct.pack("<HH", record_type, len(payload)) + payload


def biff_bof(substream=0x0010, version=0x0600):
    return biff_record(0x0809, struct.pack("<HHHHII", version, substream, 0, 0, 0, 0))


def biff_sst(strings):
    payload = struct.pack("<II", len(strings), len(strings))
    for s in strings:
        raw = s.encode("latin-1")
        payload += struct.pack("<HB", len(raw), 0) + raw
    return biff_record(0x00FC, payload)


def biff_labelsst(row, col, index):
    return biff_record(0x00FD, struct.pack("<HHHI", row, col, 0, index))


def biff_label(row, col, text):
    raw = text.encode("latin-1")
    return biff_record(0x0204, struct.pack("<HHHHB", row, col, 0, len(raw), 0) + raw)


def biff_number(row, col, value):
    return biff_record(0x0203, struct.pack("<HHHd", row, col, 0, value))


def biff_blank(row, col):
    return biff_record(0x0201, struct.pack("<HHH", row, col, 0))


def biff_eof():
    return biff_record(0x000A)


def ole_wrap(stream, offset=1024, total=8192):
    """Place a record stream at ``offset`` behind a compound-document signature"""
    header = bytes.fromhex("D0CF11E0A1B11AE1")
    buffer = bytearray(max(total, offset + len(stream)))
    buffer[:len(header)] = header
    buffer[offset:offset + len(stream)] = stream
    return bytes(buffer)


class SpreadsheetFactory:
    """Namespace exposing the builders above to tests through a fixture"""
    build_xlsx = staticmethod(build_xlsx)
    sheet_xml = staticmethod(sheet_xml)
    corrupt_part = staticmethod(corrupt_part)
    record = staticmethod(biff_record)
    bof = staticmethod(biff_bof)
    sst = staticmethod(biff_sst)
    labelsst = staticmethod(biff_labelsst)
    label = staticmethod(biff_label)
    number = staticmethod(biff_number)
    blank = staticmethod(biff_blank)
    eof = staticmethod(biff_eof)
    ole_wrap = staticmethod(ole_wrap)


@pytest.fixture
def factory():
    """
    Fixture providing builders for in-memory .xlsx containers and BIFF streams.

    Returns:
        SpreadsheetFactory: Builder namespace
    """
    return SpreadsheetFactory


@pytest.fixture
def people_xlsx():
    """
    Fixture providing the name/age workbook used throughout the tests.

    Returns:
        bytes: .xlsx container with header ["name", "age"] and two data rows
    """
    return build_xlsx(
        [("People", [[("s", "0"), ("s", "1")], [("s", "2"), ("n", "25")], [("s", "3"), ("n", "30")]])],
        shared_strings=["name", "age", "Alice", "Bob"],
    )


@pytest.fixture
def people_xls():
    """
    Fixture providing the same name/age table as a raw BIFF8 record stream.

    Returns:
        bytes: Record stream starting with a worksheet BOF
    """
    return b"".join([
        biff_bof(substream=0x0005),
        biff_sst(["name", "age", "Alice", "Bob"]),
        biff_eof(),
        biff_bof(),
        biff_labelsst(0, 0, 0), biff_labelsst(0, 1, 1),
        biff_labelsst(1, 0, 2), biff_number(1, 1, 25.0),
        biff_labelsst(2, 0, 3), biff_number(2, 1, 30.0),
        biff_eof(),
    ])
