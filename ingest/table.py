import logging
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from .coerce import CellValue, coerce

logger = logging.getLogger(__name__)

Row = List[CellValue]


def column_name(index: int) -> str:
    """Positional name used when the header row has no usable cell at ``index``"""
    return f"col_{index}"


class Table:
    """
    Normalized result of a spreadsheet decode.

    Every row holds exactly ``len(columns)`` values; shorter rows are padded
    with None on construction.

    Attributes:
        columns: Ordered column names
        rows: Ordered rows of typed values
        sheet_name: Worksheet the table was read from, when known
        source_format: Detected file family, when known
    """

    def __init__(self, columns: Sequence[str], rows: Optional[Sequence[Sequence[CellValue]]] = None,
                 sheet_name: Optional[str] = None, source_format: Optional[str] = None):
        self.columns: List[str] = list(columns)
        self.rows: List[Row] = []
        self.sheet_name = sheet_name
        self.source_format = source_format
        for row in rows or []:
            self.add_row(row)

    def add_row(self, row: Sequence[CellValue]) -> None:
        width = len(self.columns)
        if len(row) > width:
            raise ValueError(f"Row has {len(row)} values but the table has {width} columns")
        self.rows.append(list(row) + [None] * (width - len(row)))

    @property
    def shape(self):
        return len(self.rows), len(self.columns)

    def head(self, n: int = 5) -> "Table":
        return Table(self.columns, self.rows[:max(n, 0)], self.sheet_name, self.source_format)

    def to_records(self) -> List[Dict[str, Any]]:
        return [dict(zip(self.columns, row)) for row in self.rows]

    def to_dataframe(self) -> pd.DataFrame:
        """
        Hand the table to pandas.

        Values keep their Python types (object dtype) so integers next to
        missing cells are not silently widened to floats.
        """
        return pd.DataFrame(self.rows, columns=self.columns, dtype=object)

    def __len__(self) -> int:
        return len(self.rows)

    def __repr__(self) -> str:
        return f"Table(columns={self.columns!r}, rows={len(self.rows)})"


def build_table(text_rows: Sequence[Sequence[Optional[str]]]) -> Table:
    """
    Assemble a Table from rows of raw cell text.

    The first row supplies the column names; every other cell is coerced once.
    The column count is the widest row observed, header included, and header
    positions that are missing or blank get a positional ``col_<i>`` name.

    Args:
        text_rows: Rows of raw text, header first (None marks an absent cell)

    Returns:
        Table: Padded, typed table
    """
    width = max((len(row) for row in text_rows), default=0)
    header = list(text_rows[0]) if text_rows else []

    columns = []
    synthesized = 0
    for index in range(width):
        name = header[index].strip() if index < len(header) and header[index] is not None else ""
        if not name:
            name = column_name(index)
            synthesized += 1
        columns.append(name)

    if synthesized:
        logger.debug("Synthesized positional column names", extra={"count": synthesized, "width": width})

    table = Table(columns)
    for row in text_rows[1:]:
        table.add_row([coerce(text) for text in row])
    return table
