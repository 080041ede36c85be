import csv
import re
from io import StringIO
from typing import Sequence

from models import Transaction, TransactionType

EXPORT_HEADER = ["Date", "Description", "Category", "Type", "Amount"]
NO_CATEGORY = "Uncategorized"
TYPE_LABELS = {
    TransactionType.expense: "Expense",
    TransactionType.income: "Income",
}


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize spreadsheet cell values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^bash\s*",
        r"^sh\s*",
        r"^\.",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def export_row(txn: Transaction) -> list[object]:
    return [
        txn.date,
        sanitize_csv_value(txn.description or ""),
        sanitize_csv_value(txn.category.name if txn.category else NO_CATEGORY),
        TYPE_LABELS[txn.type],
        txn.amount,
    ]


def export_transactions(transactions: Sequence[Transaction]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(EXPORT_HEADER)
    for txn in transactions:
        day, description, category, kind, amount = export_row(txn)
        writer.writerow(
            [day.isoformat(), description, category, kind, f"{amount:.2f}"]
        )
    return output.getvalue()
