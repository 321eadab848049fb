"""
Tabular readers: turn an uploaded file buffer into a header and raw rows.
"""

import csv
import io
import zipfile
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Any

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from product_ingest.core.exceptions import EmptySheet, ParseFailure

EXCEL_EXTENSIONS = {".xlsx", ".xlsm"}
CSV_EXTENSIONS = {".csv"}


@dataclass
class RawRow:
    """One non-blank sheet row keyed by header; row_number is the sheet row."""

    row_number: int
    values: dict[str, Any]


@dataclass
class SheetData:
    sheet_name: str
    header: list[str]
    rows: list[RawRow] = field(default_factory=list)


def _is_blank_row(values: tuple | list) -> bool:
    return all(v is None or (isinstance(v, str) and v.strip() == "") for v in values)


def _normalise_header(raw_header: tuple | list) -> list[str | None]:
    header = []
    for cell in raw_header:
        name = str(cell).strip() if cell is not None else ""
        header.append(name or None)
    return header


def _rows_from(header: list[str | None], rows, first_row_number: int = 2) -> list[RawRow]:
    raw_rows = []
    for offset, values in enumerate(rows):
        if _is_blank_row(values):
            continue
        mapped = {
            name: values[idx] if idx < len(values) else None
            for idx, name in enumerate(header)
            if name is not None
        }
        raw_rows.append(RawRow(row_number=first_row_number + offset, values=mapped))
    return raw_rows


class WorkbookReader:
    """
    Reads the first worksheet of an .xlsx workbook with openpyxl.

    The workbook is opened read-only with cached values (data_only) so
    formula cells yield their last computed result.
    """

    def read(self, buffer: bytes) -> SheetData:
        """
        Read the first worksheet.

        Args:
            buffer: Raw workbook bytes

        Returns:
            SheetData with the header row and every non-blank data row

        Raises:
            EmptySheet: If the workbook has no worksheets
            ParseFailure: If the buffer is not a readable workbook
        """
        try:
            wb = openpyxl.load_workbook(io.BytesIO(buffer), read_only=True, data_only=True)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
            raise ParseFailure(f"Excel parsing failed: {type(e).__name__}: {e}") from e

        try:
            if not wb.worksheets:
                raise EmptySheet("Excel file contains no sheets")

            ws = wb.worksheets[0]
            rows_iter = ws.iter_rows(values_only=True)
            raw_header = next(rows_iter, None)
            if raw_header is None or _is_blank_row(raw_header):
                return SheetData(sheet_name=ws.title, header=[])

            header = _normalise_header(raw_header)
            return SheetData(
                sheet_name=ws.title,
                header=[h for h in header if h is not None],
                rows=_rows_from(header, rows_iter),
            )
        finally:
            wb.close()


class CSVReader:
    """Reads a comma separated buffer whose first line is the header."""

    def __init__(self, delimiter: str = ",", encoding: str = "utf-8-sig"):
        self.delimiter = delimiter
        self.encoding = encoding

    def read(self, buffer: bytes) -> SheetData:
        try:
            text = buffer.decode(self.encoding)
        except UnicodeDecodeError as e:
            raise ParseFailure(f"CSV parsing failed: file is not {self.encoding} text") from e

        try:
            reader = csv.reader(io.StringIO(text), delimiter=self.delimiter)
            raw_header = next(reader, None)
            if raw_header is None or _is_blank_row(raw_header):
                return SheetData(sheet_name="csv", header=[])

            header = _normalise_header(raw_header)
            rows = _rows_from(header, list(reader))
        except csv.Error as e:
            raise ParseFailure(f"CSV parsing failed: {e}") from e

        return SheetData(sheet_name="csv", header=[h for h in header if h is not None], rows=rows)


class FileReader:
    """
    Picks a reader by file extension (.xlsx/.xlsm or .csv).
    """

    def __init__(self):
        self.workbook_reader = WorkbookReader()
        self.csv_reader = CSVReader()

    def read(self, buffer: bytes, file_name: str) -> SheetData:
        """
        Read an uploaded file buffer.

        Args:
            buffer: Raw file bytes
            file_name: Original file name (extension selects the reader)

        Returns:
            SheetData

        Raises:
            ParseFailure: If the format is unsupported or unreadable
        """
        if not buffer:
            raise ParseFailure("Uploaded file is empty")

        ext = PurePath(file_name).suffix.lower()
        if ext in EXCEL_EXTENSIONS:
            return self.workbook_reader.read(buffer)
        if ext in CSV_EXTENSIONS:
            return self.csv_reader.read(buffer)
        raise ParseFailure(f"Unsupported file format: {ext or file_name}")
