"""Flat table snapshots of the ledger and their CSV/XLSX writers.

Column order is a stable contract shared by every serialization; see
:data:`~stock_ledger.constants.INVENTORY_COLUMNS`,
:data:`~stock_ledger.constants.SALES_COLUMNS` and
:data:`~stock_ledger.constants.REPORT_COLUMNS`.
"""

from __future__ import annotations

import csv
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple, Union

import openpyxl
from openpyxl.styles import Font

from . import log
from .constants import INVENTORY_COLUMNS, REPORT_COLUMNS, SALES_COLUMNS
from .models import Product, Sale
from .money import round2
from .reports import Report
from .stock_status import classify, effective_min_stock


SALE_DATETIME_FORMAT = "%d/%m/%Y, %H:%M:%S"


@dataclass(frozen=True)
class Table:
    headers: Tuple[str, ...]
    rows: List[Tuple[object, ...]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)


def inventory_table(products: Iterable[Product], default_min_stock: int) -> Table:
    """Snapshot the inventory with computed value and status label."""

    rows = [
        (
            product.name,
            product.category,
            product.quantity,
            product.unit,
            product.price,
            effective_min_stock(product, default_min_stock),
            round2(product.value),
            classify(product, default_min_stock).label,
        )
        for product in products
    ]
    return Table(headers=INVENTORY_COLUMNS, rows=rows)


def sales_table(sales: Iterable[Sale]) -> Table:
    rows = [
        (
            sale.date.strftime(SALE_DATETIME_FORMAT),
            sale.product,
            sale.quantity,
            sale.unit_price,
            sale.subtotal,
            sale.discount_type.value,
            sale.discount_value,
            sale.discount_applied,
            sale.total,
        )
        for sale in sales
    ]
    return Table(headers=SALES_COLUMNS, rows=rows)


def report_table(report: Report) -> Table:
    rows = [
        (row.period, row.orders, row.units, row.revenue, row.avg_order_value)
        for row in report.periods
    ]
    return Table(headers=REPORT_COLUMNS, rows=rows)


def export_filename(prefix: str, when: datetime, extension: str) -> str:
    """Build a dated file name such as ``inventory_2026-10-19.csv``."""

    return f"{prefix}_{when.date().isoformat()}.{extension.lstrip('.')}"


def _prepare_destination(destination: Union[str, Path]) -> Path:
    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    return dest


def write_csv(table: Table, destination: Union[str, Path]) -> Path:
    """Write ``table`` as UTF-8 CSV with a header row."""

    dest = _prepare_destination(destination)
    with dest.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(table.headers)
        writer.writerows(table.rows)
    log.info("Exported %d rows to '%s'", len(table), dest)
    return dest


def write_workbook(table: Table, destination: Union[str, Path], sheet_title: str) -> Path:
    """Write ``table`` to a single-sheet ``.xlsx`` workbook.

    The header row is bold; decimals are written as numeric cells.
    """

    dest = _prepare_destination(destination)
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = sheet_title

    bold_font = Font(bold=True)
    for col_idx, column_name in enumerate(table.headers, 1):
        cell = sheet.cell(row=1, column=col_idx)
        cell.value = column_name
        cell.font = bold_font

    for row in table.rows:
        sheet.append(list(row))

    workbook.save(dest)
    log.info("Exported %d rows to workbook '%s' (sheet '%s')", len(table), dest, sheet_title)
    return dest


def read_workbook_rows(source: Union[str, Path], sheet_title: str) -> List[Sequence[object]]:
    """Read back every data row of a sheet written by :func:`write_workbook`."""

    workbook = openpyxl.load_workbook(Path(source).expanduser().resolve())
    sheet = workbook[sheet_title]
    return [row for row in sheet.iter_rows(min_row=2, values_only=True) if any(cell is not None for cell in row)]
