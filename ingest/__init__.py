"""
Spreadsheet ingestion: decodes .xlsx containers and legacy .xls record
streams into one normalized Table.
"""
from .coerce import CellValue, coerce
from .errors import (
    ContainerError,
    DecodeError,
    EmptyInputError,
    ErrorKind,
    MalformedRecordError,
    NotFoundError,
    UnsupportedFormatError,
)
from .reader import read_spreadsheet
from .signature import SpreadsheetFormat, sniff_format
from .table import Table, build_table

__all__ = [
    'read_spreadsheet', 'sniff_format', 'SpreadsheetFormat',
    'Table', 'build_table', 'coerce', 'CellValue',
    'DecodeError', 'ErrorKind', 'UnsupportedFormatError', 'ContainerError',
    'NotFoundError', 'EmptyInputError', 'MalformedRecordError',
]
