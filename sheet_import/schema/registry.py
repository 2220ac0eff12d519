from __future__ import annotations

from collections.abc import Sequence

from ..models.column_spec import BoundedText, ColumnSpec, DateOnly, Decimal, Integer

"""Static description of the destination table.

Changing the destination schema is a code change + redeploy, not a runtime operation.
Registry order is significant: validation and writes walk the columns in this order.
"""

__all__ = [
    "TABLE_NAME",
    "TABLE_COLUMNS",
    "get_column",
    "writable_columns",
]

TABLE_NAME = "REP_usaSalesByRevenueCenter"

TABLE_COLUMNS: tuple[ColumnSpec, ...] = (
    ColumnSpec("Id", Integer(), is_identity=True, description="Auto-generated ID"),
    ColumnSpec("SalesDate", DateOnly(), is_required=True, description="Date of the sale"),
    ColumnSpec("MeraLocationId", Integer(), is_required=True, description="ID of the location"),
    ColumnSpec(
        "MeraRevenueCenterName",
        BoundedText(100),
        is_required=True,
        description="Name of the revenue center",
    ),
    ColumnSpec("MeraAreaId", Integer(), description="ID of the area", null_when_empty=True),
    ColumnSpec("Sales", Decimal(38, 0), is_required=True, description="Total sales amount"),
    ColumnSpec("Voids", Decimal(38, 0), description="Total voided amount"),
    ColumnSpec("Discounts", Decimal(38, 0), description="Total discount amount"),
    ColumnSpec("PaxCount", Integer(), description="Number of guests (pax)"),
    ColumnSpec("CheckCount", Integer(), description="Number of checks/transactions"),
    ColumnSpec("Budget", Decimal(38, 0), description="Budgeted sales amount"),
    ColumnSpec("MeraOrderType", Integer(), description="ID for the order type"),
    ColumnSpec("Cost", Decimal(38, 0), description="Cost of goods sold"),
    ColumnSpec("PAXBudget", Decimal(38, 0), description="Budgeted guest count (pax)"),
    ColumnSpec("Tax", Decimal(38, 0), description="Total tax amount"),
    ColumnSpec("DiscountTypeSales", Decimal(10, 0), description="Discount amount by sales type"),
    ColumnSpec(
        "DiscountTypeAdmOp", Decimal(10, 0), description="Administrative or operational discount"
    ),
    ColumnSpec(
        "TotalOpenCheckTime",
        Decimal(38, 0),
        description="Total time checks were open, in seconds",
    ),
    ColumnSpec(
        "MeraRevenueCenterId", Integer(), is_required=True, description="ID of the revenue center"
    ),
)


def get_column(name: str) -> ColumnSpec:
    """Look up a column by name.

    Raises:
        KeyError: if the table has no such column
    """
    for col in TABLE_COLUMNS:
        if col.name == name:
            return col
    raise KeyError(name)


def writable_columns(columns: Sequence[ColumnSpec] = TABLE_COLUMNS) -> list[ColumnSpec]:
    """Non-identity columns in registry order."""
    return [c for c in columns if not c.is_identity]
