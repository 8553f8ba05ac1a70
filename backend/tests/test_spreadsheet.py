"""
Spreadsheet reader tests: xlsx via openpyxl, csv, and rejected uploads.
"""

from datetime import datetime
from io import BytesIO

import pytest
from openpyxl import Workbook

from branchpos.errors import InvalidFileFormatError
from branchpos.services.spreadsheet import read_spreadsheet


def _xlsx(rows) -> BytesIO:
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(row)
    buffer = BytesIO()
    workbook.save(buffer)
    buffer.seek(0)
    return buffer


def test_xlsx_drops_header_and_pads_rows():
    stream = _xlsx([
        ["Barcode", "Branch", "Quantity", "Lot", "Expiry"],
        [7801234000011, "Casa Matriz", 10, "L1", datetime(2025, 1, 31)],
        ["7801234000028", "Sucursal Centro", 4],
    ])

    rows = read_spreadsheet(stream, "stock.xlsx")

    assert rows == [
        (7801234000011, "Casa Matriz", 10, "L1", datetime(2025, 1, 31)),
        ("7801234000028", "Sucursal Centro", 4, None, None),
    ]


def test_csv_with_semicolons_and_bom():
    body = "\ufeffbarcode;branch;quantity;lot;expiry\n7801234000011;Casa Matriz;10;L1;2025-01-31\n"
    rows = read_spreadsheet(BytesIO(body.encode("utf-8")), "STOCK.CSV")
    assert rows == [("7801234000011", "Casa Matriz", "10", "L1", "2025-01-31")]


def test_csv_extra_columns_are_truncated():
    body = "a,b,c,d,e,f\n1,2,3,4,5,6\n"
    rows = read_spreadsheet(BytesIO(body.encode()), "stock.csv")
    assert rows == [("1", "2", "3", "4", "5")]


def test_unsupported_extension():
    with pytest.raises(InvalidFileFormatError) as exc:
        read_spreadsheet(BytesIO(b"whatever"), "stock.pdf")
    assert exc.value.details["filename"] == "stock.pdf"


def test_missing_filename():
    with pytest.raises(InvalidFileFormatError):
        read_spreadsheet(BytesIO(b"whatever"), None)


def test_corrupt_workbook():
    with pytest.raises(InvalidFileFormatError):
        read_spreadsheet(BytesIO(b"this is not a zip archive"), "stock.xlsx")


def test_csv_not_utf8():
    with pytest.raises(InvalidFileFormatError):
        read_spreadsheet(BytesIO("código;sucursal\n".encode("utf-16")), "stock.csv")
