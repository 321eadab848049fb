"""
File ingestion: readers, cell coercion and the record parser.
"""

from .coercion import CoercionError, clean_string, parse_date, parse_decimal, parse_integer
from .parser import RecordParser
from .readers import CSVReader, FileReader, SheetData, WorkbookReader

__all__ = [
    "RecordParser",
    "FileReader",
    "WorkbookReader",
    "CSVReader",
    "SheetData",
    "CoercionError",
    "clean_string",
    "parse_integer",
    "parse_decimal",
    "parse_date",
]
