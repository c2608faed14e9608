from stockview.models.table_row import TableRow

__all__ = [
    "TableRow",
]
