import io
import logging
import os
from typing import Optional, Union

from .biff import read_xls
from .context import DecodeContext
from .errors import ContainerError, NotFoundError
from .ooxml import read_xlsx
from .signature import SpreadsheetFormat, check_extension, sniff_format
from .table import Table

logger = logging.getLogger(__name__)

Source = Union[str, "os.PathLike[str]", bytes, bytearray]


def _load_bytes(path: str) -> bytes:
    if not os.path.exists(path):
        raise NotFoundError(f"File does not exist at path: {path}")
    try:
        with open(path, "rb") as handle:
            return handle.read()
    except OSError as e:
        raise ContainerError(f"Failed to read file {path}: {e}") from e


def read_spreadsheet(source: Source, sheet_name: Optional[str] = None,
                     extension: Optional[str] = None) -> Table:
    """
    Decode a spreadsheet file or buffer into a Table.

    The extension is checked before anything is read, so an unsupported
    extension fails without touching the bytes. For paths the extension
    defaults to the file suffix; in-memory buffers without one are sniffed.

    Args:
        source: File path or raw bytes
        sheet_name: Worksheet to read (OOXML only); the first sheet by default
        extension: Overrides the path suffix, e.g. ".xls"

    Returns:
        Table: Normalized column names and typed rows

    Raises:
        DecodeError: Any of its subclasses, see ingest.errors
    """
    if isinstance(source, (bytes, bytearray)):
        path = None
        data_source: Optional[bytes] = bytes(source)
    else:
        path = os.fspath(source)
        data_source = None
        if extension is None:
            extension = os.path.splitext(path)[1]

    extension = check_extension(extension)
    data = data_source if data_source is not None else _load_bytes(path)
    detected = sniff_format(data, extension)

    if sheet_name and detected is not SpreadsheetFormat.OOXML:
        logger.info("Sheet selection is ignored for legacy workbooks", extra={"sheet": sheet_name})

    with DecodeContext(io.BytesIO(data), sheet_name=sheet_name) as context:
        if detected is SpreadsheetFormat.OOXML:
            table = read_xlsx(context)
        else:
            table = read_xls(context, data)
    table.sheet_name = context.sheet_name if detected is SpreadsheetFormat.OOXML else None
    table.source_format = detected.value

    rows, columns = table.shape
    logger.info("Decoded spreadsheet", extra={
        "source": path or "<bytes>",
        "format": detected.value,
        "sheet": table.sheet_name,
        "rows": rows,
        "columns": columns,
    })
    return table
