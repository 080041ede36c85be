from io import BytesIO
from typing import Sequence

from openpyxl import Workbook
from openpyxl.styles import Font

from csv_utils import EXPORT_HEADER, export_row
from models import Transaction

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
SHEET_TITLE = "Transactions"
COLUMN_WIDTHS = {"A": 15, "B": 30, "C": 20, "D": 10, "E": 15}
AMOUNT_FORMAT = "#,##0.00"
DATE_FORMAT = "yyyy-mm-dd"


def export_workbook(transactions: Sequence[Transaction]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE
    ws.append(EXPORT_HEADER)
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for column, width in COLUMN_WIDTHS.items():
        ws.column_dimensions[column].width = width

    for txn in transactions:
        ws.append(export_row(txn))
        row = ws.max_row
        ws.cell(row=row, column=1).number_format = DATE_FORMAT
        ws.cell(row=row, column=5).number_format = AMOUNT_FORMAT

    ws.freeze_panes = "A2"
    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()
