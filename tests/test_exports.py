"""Tests for the flat table snapshots and their CSV/XLSX writers."""

from __future__ import annotations

import csv
from datetime import date
from decimal import Decimal

import openpyxl

from conftest import BASE_MOMENT, make_product
from stock_ledger import constants, core_logic, exports, reports


def test_inventory_table_uses_effective_threshold_and_labels():
    products = [
        make_product(0, name="Empty", price="2.00"),
        make_product(4, name="Few", price="1.25"),
        make_product(9, name="Some", price="3.00", min_stock=0),
    ]

    table = exports.inventory_table(products, default_min_stock=5)

    assert table.headers == constants.INVENTORY_COLUMNS
    assert len(table) == 3
    assert table.rows[0] == ("Empty", "Other", 0, "pieces", Decimal("2.00"), 5, Decimal("0.00"), "Out of Stock")
    assert table.rows[1][-3:] == (5, Decimal("5.00"), "Low Stock")
    assert table.rows[2][-3:] == (0, Decimal("27.00"), "In Stock")


def test_sales_table_formats_timestamp(context, widget):
    core_logic.commit_sale(context, widget.id, 3, "flat", "1.00")

    table = exports.sales_table(core_logic.list_sales(context))

    assert table.headers == constants.SALES_COLUMNS
    assert table.rows == [
        (
            "14/10/2026, 10:30:00",
            "Widget",
            3,
            Decimal("5.00"),
            Decimal("15.00"),
            "flat",
            Decimal("1.00"),
            Decimal("1.00"),
            Decimal("14.00"),
        )
    ]


def test_report_table_lists_periods(context, widget):
    core_logic.commit_sale(context, widget.id, 2)
    report = core_logic.range_report(context, date(2026, 10, 1), date(2026, 10, 31))

    table = exports.report_table(report)

    assert table.headers == constants.REPORT_COLUMNS
    assert table.rows == [("2026-10-14", 1, 2, Decimal("10.00"), Decimal("10.00"))]


def test_empty_report_table_has_only_headers():
    assert len(exports.report_table(reports.Report())) == 0


def test_export_filename():
    assert exports.export_filename("inventory", BASE_MOMENT, ".csv") == "inventory_2026-10-14.csv"
    assert exports.export_filename("sales", BASE_MOMENT, "xlsx") == "sales_2026-10-14.xlsx"


def test_write_csv_round_trip(tmp_path):
    table = exports.inventory_table([make_product(12, name="Glue, Clear", price="3.00")], 5)

    dest = exports.write_csv(table, tmp_path / "out" / "inventory.csv")

    with dest.open(newline="", encoding="utf-8") as handle:
        rows = list(csv.reader(handle))
    assert rows[0] == list(constants.INVENTORY_COLUMNS)
    assert rows[1] == ["Glue, Clear", "Other", "12", "pieces", "3.00", "5", "36.00", "In Stock"]


def test_write_workbook_bold_header_and_numeric_cells(tmp_path):
    table = exports.inventory_table([make_product(4, name="Tape", price="2.50")], 5)

    dest = exports.write_workbook(table, tmp_path / "inventory.xlsx", "Inventory")

    workbook = openpyxl.load_workbook(dest)
    sheet = workbook["Inventory"]
    assert [cell.value for cell in sheet[1]] == list(constants.INVENTORY_COLUMNS)
    assert all(cell.font.bold for cell in sheet[1])

    (row,) = exports.read_workbook_rows(dest, "Inventory")
    assert row[0] == "Tape"
    assert row[2] == 4
    assert float(row[4]) == 2.5
    assert float(row[6]) == 10.0
    assert row[7] == "Low Stock"


def test_read_workbook_rows_of_empty_table(tmp_path):
    dest = exports.write_workbook(exports.report_table(reports.Report()), tmp_path / "r.xlsx", "Report")
    assert exports.read_workbook_rows(dest, "Report") == []
