import logging
import struct
from typing import Callable, Dict, List, Optional

from .coerce import format_number
from .context import MAX_RECORD_SIZE, ByteCursor, DecodeContext, RawRecord, SharedStringTable
from .errors import EmptyInputError, MalformedRecordError
from .ole import locate_record_stream
from .signature import SpreadsheetFormat, sniff_format
from .table import Table, build_table

logger = logging.getLogger(__name__)

# Record codes
BOF = 0x0809
BOF_ALT = 0x0805
EOF = 0x000A
SST = 0x00FC
CONTINUE = 0x003C
LABELSST = 0x00FD
LABEL = 0x0204
NUMBER = 0x0203
RK = 0x027E
MULRK = 0x00BD
BOOLERR = 0x0205
BLANK = 0x0201
MULBLANK = 0x00BE
ROW = 0x0208

BIFF5_VERSION = 0x0500
BIFF8_VERSION = 0x0600
WORKSHEET_SUBSTREAM = 0x0010

ALLOWED_CONTROL_CHARS = "\t\n\r"

CELL_HEADER = struct.Struct("<HHH")  # row, column, xf index


def sanitize(text: str) -> str:
    """Drop every character outside printable ASCII, tab, newline and carriage return"""
    return "".join(ch for ch in text if " " <= ch <= "~" or ch in ALLOWED_CONTROL_CHARS)


def decode_chars(raw: bytes, wide: bool) -> str:
    return raw.decode("utf-16-le", errors="ignore") if wide else raw.decode("latin-1")


def decode_rk(rk: int) -> float:
    """Decode an RK value: a 30-bit integer or the top 30 bits of a double, optionally divided by 100"""
    if rk & 0x02:
        value = float(struct.unpack("<i", struct.pack("<I", rk))[0] >> 2)
    else:
        value = struct.unpack("<d", struct.pack("<Q", (rk & 0xFFFFFFFC) << 32))[0]
    if rk & 0x01:
        value /= 100
    return value


def _require(record: RawRecord, size: int, name: str) -> None:
    if record.size < size:
        raise MalformedRecordError(
            f"{name} record at offset {record.offset} needs {size} bytes, has {record.size}",
            offset=record.offset,
            record_type=record.type,
            size=record.size,
        )


class ChunkReader:
    """
    Reads an SST body and the CONTINUE records that follow it as one stream.

    Plain reads run straight across chunk boundaries. Character data that
    crosses into the next chunk restarts with an option flags byte, which may
    switch between compressed 8-bit and UTF-16 characters.
    """

    def __init__(self, chunks: List[bytes], offset: int):
        self.chunks = chunks
        self.offset = offset
        self.index = 0
        self.position = 0

    @property
    def exhausted(self) -> bool:
        return self.index == len(self.chunks) - 1 and self.position >= len(self.chunks[self.index])

    def _truncated(self) -> MalformedRecordError:
        return MalformedRecordError(
            f"Shared string table at offset {self.offset} ends inside a string",
            offset=self.offset,
            record_type=SST,
        )

    def _next_chunk(self) -> bool:
        if self.index + 1 >= len(self.chunks):
            return False
        self.index += 1
        self.position = 0
        return True

    def read(self, size: int) -> bytes:
        out = bytearray()
        while len(out) < size:
            chunk = self.chunks[self.index]
            if self.position >= len(chunk):
                if not self._next_chunk():
                    raise self._truncated()
                continue
            take = min(size - len(out), len(chunk) - self.position)
            out += chunk[self.position:self.position + take]
            self.position += take
        return bytes(out)

    def read_chars(self, count: int, wide: bool) -> str:
        parts = []
        while count > 0:
            chunk = self.chunks[self.index]
            if self.position >= len(chunk):
                if not self._next_chunk():
                    raise self._truncated()
                wide = bool(self.read(1)[0] & 0x01)
                continue
            width = 2 if wide else 1
            take = min(count, (len(chunk) - self.position) // width)
            if take == 0:
                raise self._truncated()
            end = self.position + take * width
            parts.append(decode_chars(chunk[self.position:end], wide))
            self.position = end
            count -= take
        return "".join(parts)


class RecordStreamReader:
    """
    Walk a legacy record stream and collect cell text by (row, column).

    Records are consumed strictly in order since each header fixes the offset
    of the next one. Only the first worksheet substream contributes cells.

    Attributes:
        strings: Flat shared string list, in SST order
        cells: Row index -> column index -> raw text (None for blank cells)
    """

    def __init__(self, data: bytes, offset: int = 0):
        self.cursor = ByteCursor(data, offset)
        self.version = BIFF8_VERSION
        self.strings: List[str] = []
        self.cells: Dict[int, Dict[int, Optional[str]]] = {}
        self.worksheets_seen = 0
        self.records_read = 0
        self.records_skipped = 0
        self._handlers: Dict[int, Callable[[RawRecord], None]] = {
            BOF: self._on_bof,
            BOF_ALT: self._on_bof,
            SST: self._on_sst,
            LABELSST: self._on_labelsst,
            LABEL: self._on_label,
            NUMBER: self._on_number,
            RK: self._on_rk,
            MULRK: self._on_mulrk,
            BOOLERR: self._on_boolerr,
            BLANK: self._on_blank,
            MULBLANK: self._on_mulblank,
            ROW: self._on_row,
        }

    @property
    def accepting_cells(self) -> bool:
        return self.worksheets_seen <= 1

    def read(self) -> List[List[Optional[str]]]:
        """
        Consume records until the stream ends and return the rows in row order.

        Fewer than 4 remaining bytes ends the stream cleanly. A record that runs
        past the end of the buffer also ends it, keeping everything decoded so far.
        """
        while True:
            try:
                record = self.cursor.read_record()
            except MalformedRecordError as e:
                logger.warning("Truncated record, stopping", extra=e.fields)
                self.records_skipped += 1
                break
            if record is None:
                break

            self.records_read += 1
            if record.size > MAX_RECORD_SIZE:
                logger.warning("Oversized record skipped",
                               extra={"offset": record.offset, "record_type": f"0x{record.type:04X}", "size": record.size})
                self.records_skipped += 1
                continue

            handler = self._handlers.get(record.type)
            if handler is None:
                continue
            try:
                handler(record)
            except MalformedRecordError as e:
                logger.warning(f"Malformed record skipped: {e.message}", extra=e.fields)
                self.records_skipped += 1

        logger.debug("Record stream consumed", extra={
            "records_read": self.records_read,
            "records_skipped": self.records_skipped,
            "strings": len(self.strings),
            "rows": len(self.cells),
        })
        return self.rows()

    def rows(self) -> List[List[Optional[str]]]:
        result = []
        for row_index in sorted(self.cells):
            columns = self.cells[row_index]
            texts: List[Optional[str]] = [None] * (max(columns) + 1 if columns else 0)
            for column, text in columns.items():
                texts[column] = text
            result.append(texts)
        return result

    def _place(self, row: int, column: int, text: Optional[str]) -> None:
        if self.accepting_cells:
            self.cells.setdefault(row, {})[column] = text

    def _decode_chars(self, raw: bytes, wide: bool) -> str:
        return sanitize(decode_chars(raw, wide))

    # Record handlers

    def _on_bof(self, record: RawRecord) -> None:
        _require(record, 4, "BOF")
        version, substream = struct.unpack_from("<HH", record.payload, 0)
        if version in (BIFF5_VERSION, BIFF8_VERSION):
            self.version = version
        if substream == WORKSHEET_SUBSTREAM:
            self.worksheets_seen += 1

    def _continuations(self) -> List[bytes]:
        """Consume the CONTINUE records directly following the current record"""
        chunks = []
        while self.cursor.peek_type() == CONTINUE:
            try:
                record = self.cursor.read_record()
            except MalformedRecordError as e:
                logger.warning("Truncated CONTINUE record, stopping", extra=e.fields)
                self.records_skipped += 1
                break
            self.records_read += 1
            chunks.append(record.payload)
        return chunks

    def _on_sst(self, record: RawRecord) -> None:
        _require(record, 8, "SST")
        _, unique = struct.unpack_from("<II", record.payload, 0)
        reader = ChunkReader([record.payload[8:]] + self._continuations(), record.offset)
        parsed = 0
        try:
            while parsed < unique and not reader.exhausted:
                length, flags = struct.unpack("<HB", reader.read(3))
                runs = struct.unpack("<H", reader.read(2))[0] if flags & 0x08 else 0
                ext = struct.unpack("<I", reader.read(4))[0] if flags & 0x04 else 0
                self.strings.append(sanitize(reader.read_chars(length, bool(flags & 0x01))))
                parsed += 1
                # Formatting runs and phonetic data
                reader.read(runs * 4 + ext)
        except MalformedRecordError as e:
            logger.warning(f"Malformed shared string table: {e.message}", extra=e.fields)

        if parsed < unique:
            logger.warning("Shared string table incomplete",
                           extra={"offset": record.offset, "declared": unique, "parsed": parsed})

    def _on_labelsst(self, record: RawRecord) -> None:
        _require(record, 10, "LABELSST")
        row, column, _ = CELL_HEADER.unpack_from(record.payload, 0)
        index = struct.unpack_from("<I", record.payload, 6)[0]
        if index < len(self.strings):
            self._place(row, column, self.strings[index])
        else:
            logger.debug("Shared string index out of range, keeping raw index",
                         extra={"row": row, "column": column, "index": index, "table_size": len(self.strings)})
            self._place(row, column, str(index))

    def _on_label(self, record: RawRecord) -> None:
        _require(record, 8, "LABEL")
        row, column, _ = CELL_HEADER.unpack_from(record.payload, 0)
        length = struct.unpack_from("<H", record.payload, 6)[0]
        position = 8
        wide = False
        if self.version == BIFF8_VERSION:
            _require(record, 9, "LABEL")
            wide = bool(record.payload[8] & 0x01)
            position = 9
        end = position + length * (2 if wide else 1)
        _require(record, end, "LABEL")
        self._place(row, column, self._decode_chars(record.payload[position:end], wide))

    def _on_number(self, record: RawRecord) -> None:
        _require(record, 14, "NUMBER")
        row, column, _ = CELL_HEADER.unpack_from(record.payload, 0)
        value = struct.unpack_from("<d", record.payload, 6)[0]
        self._place(row, column, format_number(value))

    def _on_rk(self, record: RawRecord) -> None:
        _require(record, 10, "RK")
        row, column, _ = CELL_HEADER.unpack_from(record.payload, 0)
        rk = struct.unpack_from("<I", record.payload, 6)[0]
        self._place(row, column, format_number(decode_rk(rk)))

    def _on_mulrk(self, record: RawRecord) -> None:
        _require(record, 12, "MULRK")
        row, first_column = struct.unpack_from("<HH", record.payload, 0)
        count = (record.size - 6) // 6
        for i in range(count):
            rk = struct.unpack_from("<I", record.payload, 4 + i * 6 + 2)[0]
            self._place(row, first_column + i, format_number(decode_rk(rk)))

    def _on_boolerr(self, record: RawRecord) -> None:
        _require(record, 8, "BOOLERR")
        row, column, _ = CELL_HEADER.unpack_from(record.payload, 0)
        value, is_error = record.payload[6], record.payload[7]
        if is_error:
            self._place(row, column, None)
        else:
            self._place(row, column, "true" if value else "false")

    def _on_blank(self, record: RawRecord) -> None:
        _require(record, 6, "BLANK")
        row, column, _ = CELL_HEADER.unpack_from(record.payload, 0)
        self._place(row, column, None)

    def _on_mulblank(self, record: RawRecord) -> None:
        _require(record, 8, "MULBLANK")
        row, first_column = struct.unpack_from("<HH", record.payload, 0)
        for i in range((record.size - 6) // 2):
            self._place(row, first_column + i, None)

    def _on_row(self, record: RawRecord) -> None:
        _require(record, 6, "ROW")
        row = struct.unpack_from("<H", record.payload, 0)[0]
        if self.accepting_cells:
            self.cells.setdefault(row, {})


def read_xls(context: DecodeContext, data: bytes) -> Table:
    """
    Decode a legacy workbook, raw or wrapped in a compound document.

    Args:
        context: Decode context for this call
        data: Whole file contents

    Returns:
        Table: Header from the first row, typed data rows

    Raises:
        NotFoundError: Compound document without an embedded record stream
        EmptyInputError: No cells were decoded
    """
    detected = sniff_format(data, ".xls")
    offset = 0
    if detected is SpreadsheetFormat.LEGACY_OLE:
        offset = locate_record_stream(data).offset

    reader = RecordStreamReader(data, offset)
    context.cursor = reader.cursor
    rows = reader.read()
    context.shared_strings = SharedStringTable(reader.strings)

    if not rows:
        raise EmptyInputError("No data found in XLS file")
    return build_table(rows)
