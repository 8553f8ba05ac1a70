# Overview: Reads uploaded stock-import spreadsheets into plain row tuples.

"""
Spreadsheet source for stock imports.

Accepted formats: .xlsx / .xlsm (openpyxl, first worksheet) and .csv.
The first row is a header and is discarded. Cell values are returned as
read; classification happens in stock_service.import_preview.
"""
from __future__ import annotations

import csv
import io
import zipfile
from typing import IO

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from ..errors import InvalidFileFormatError


EXCEL_EXTENSIONS = (".xlsx", ".xlsm")
CSV_EXTENSIONS = (".csv",)

ROW_WIDTH = 5  # barcode, branch, quantity, lot, expiry


def _pad(row) -> tuple:
    cells = list(row)[:ROW_WIDTH]
    return tuple(cells + [None] * (ROW_WIDTH - len(cells)))


def _read_excel(stream: IO[bytes]) -> list[tuple]:
    try:
        workbook = load_workbook(stream, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        raise InvalidFileFormatError("Could not read Excel file", details={"reason": str(exc)})

    try:
        sheet = workbook.worksheets[0] if workbook.worksheets else None
        if sheet is None:
            raise InvalidFileFormatError("Excel file has no worksheets")
        rows = [_pad(row) for row in sheet.iter_rows(min_row=2, values_only=True)]
    finally:
        workbook.close()
    return rows


def _read_csv(stream: IO[bytes]) -> list[tuple]:
    raw = stream.read()
    try:
        text = raw.decode("utf-8-sig") if isinstance(raw, bytes) else raw
    except UnicodeDecodeError:
        raise InvalidFileFormatError("CSV file must be UTF-8 encoded")

    try:
        dialect = csv.Sniffer().sniff(text[:2048], delimiters=",;\t")
    except csv.Error:
        dialect = csv.excel

    try:
        rows = list(csv.reader(io.StringIO(text), dialect))
    except csv.Error as exc:
        raise InvalidFileFormatError("Could not parse CSV file", details={"reason": str(exc)})
    return [_pad(row) for row in rows[1:]]


def read_spreadsheet(stream: IO[bytes], filename: str | None) -> list[tuple]:
    """
    Rows of the first sheet as 5-tuples, header removed.

    Raises InvalidFileFormatError for unknown extensions or unreadable files.
    """
    name = (filename or "").lower()
    if name.endswith(EXCEL_EXTENSIONS):
        return _read_excel(stream)
    if name.endswith(CSV_EXTENSIONS):
        return _read_csv(stream)
    raise InvalidFileFormatError(
        "Unsupported file type; upload an .xlsx or .csv file",
        details={"filename": filename},
    )
