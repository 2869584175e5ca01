"""
Parsers for the wide-format COVID-19 time-series tables.

This module contains:
- parse_header_date: Recognises the date columns of a table header.
- CsvTableReader: Reads CSV content into a typed WideTable whose rows are
  lists of cell text addressed by column position.
"""

import logging
from datetime import datetime, timezone
from io import StringIO
from typing import Generator, List, NamedTuple, Optional, Sequence

import pandas as pd

logger = logging.getLogger(__name__)

COUNTRY_COLUMNS = ("Country/Region", "Country")
PROVINCE_COLUMNS = ("Province/State", "Province")

# Locale-independent header formats, e.g. '1/22/20', '1/22/2020', '2020-01-22'.
HEADER_DATE_FORMATS = ("%m/%d/%y", "%m/%d/%Y", "%Y-%m-%d")


def parse_header_date(header: str) -> Optional[datetime]:
    """
    Parses a column header as a calendar date at midnight UTC.

    Returns:
        The parsed date, or None if the header is not a date.
    """
    text = str(header).strip()
    for fmt in HEADER_DATE_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        return parsed.replace(tzinfo=timezone.utc)
    return None


def _pick_column(headers: Sequence[str], candidates: Sequence[str]) -> Optional[int]:
    for candidate in candidates:
        if candidate in headers:
            return headers.index(candidate)
    return None


class DateColumn(NamedTuple):
    """A header that parsed as a date, with its position in the row."""

    position: int
    header: str
    date: datetime


class WideTable:
    """
    A parsed wide-format table: identity columns, date columns and rows.

    Columns are addressed by position, so repeated headers stay distinct.
    """

    def __init__(self, headers: Sequence[str], frame: pd.DataFrame):
        self._frame = frame
        self.headers: List[str] = [str(h) for h in headers]

        country_position = _pick_column(self.headers, COUNTRY_COLUMNS)
        if country_position is None:
            raise ValueError(
                "Table has no country column; expected one of "
                f"{', '.join(COUNTRY_COLUMNS)}. Header: {self.headers}"
            )
        self.country_position: int = country_position
        self.province_position: Optional[int] = _pick_column(
            self.headers, PROVINCE_COLUMNS
        )

        identity = {self.country_position, self.province_position}
        self.date_columns: List[DateColumn] = []
        for position, header in enumerate(self.headers):
            if position in identity:
                continue
            parsed = parse_header_date(header)
            if parsed is None:
                logger.debug(f"Skipping non-date column '{header}'.")
                continue
            self.date_columns.append(DateColumn(position, header, parsed))

    @property
    def country_column(self) -> str:
        return self.headers[self.country_position]

    @property
    def province_column(self) -> Optional[str]:
        if self.province_position is None:
            return None
        return self.headers[self.province_position]

    def __len__(self) -> int:
        return len(self._frame)

    def rows(self) -> Generator[List[str], None, None]:
        """Yields each data row as its cell texts, one per header position."""
        for values in self._frame.itertuples(index=False, name=None):
            yield ["" if pd.isna(v) else str(v) for v in values]


class CsvTableReader:
    """Reads delimited text with a header row into a WideTable."""

    def __init__(self, delimiter: str = ","):
        self.delimiter = delimiter

    def _read_csv(self, content: str, **kwargs) -> pd.DataFrame:
        # Every cell is kept as text; blank cells stay blank rather than NaN.
        return pd.read_csv(
            StringIO(content),
            sep=self.delimiter,
            header=None,
            dtype=str,
            keep_default_na=False,
            skipinitialspace=True,
            engine="python",
            **kwargs,
        )

    def read(self, content: str) -> WideTable:
        if not content.strip():
            raise ValueError("Cannot parse an empty table: no header row found.")

        # The header row is read raw so repeated headers are not renamed.
        header_row = self._read_csv(content, nrows=1)
        headers = [str(h).strip() for h in header_row.iloc[0]]
        width = len(headers)

        def truncate(bad_line: List[str]) -> List[str]:
            logger.warning(
                f"Dropping {len(bad_line) - width} extra cell(s) from row "
                f"starting with '{bad_line[0]}'."
            )
            return bad_line[:width]

        df = self._read_csv(
            content, names=list(range(width)), on_bad_lines=truncate
        )
        df = df.iloc[1:].reset_index(drop=True)

        table = WideTable(headers, df)
        logger.info(
            f"Parsed table with {len(table)} rows and "
            f"{len(table.date_columns)} date columns."
        )
        return table
