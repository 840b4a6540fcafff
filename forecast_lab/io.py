"""
io.py - Table Input Boundary

This module converts a rectangular table of raw cells, as handed over by
a spreadsheet reader or a CSV module, into the core value types:
- series_from_table: One column as a TimeSeries
- matrix_from_table: All cells as a Matrix

Cells may be numbers or numeric strings (surrounding whitespace is
ignored). Parsing text files is left to the caller.

Example Usage:
-------------
    >>> from forecast_lab.io import series_from_table
    >>>
    >>> rows = [["month", "sales"], ["jan", "10.5"], ["feb", "11.0"]]
    >>> series_from_table(rows, column="sales", has_header=True).observations()
    array([10.5, 11. ])
"""

from __future__ import annotations

from typing import Any, List, Sequence, Union

import numpy as np

from .exceptions import IndexOutOfRangeError, InvalidDimensionError
from .matrix import Matrix
from .timeseries import TimeSeries
from .types import Order

Table = Sequence[Sequence[Any]]


def _to_float(cell: Any, row: int, column: int) -> float:
    if isinstance(cell, bool):
        raise ValueError(f"Non-numeric cell at row {row}, column {column}: {cell!r}")
    if isinstance(cell, str):
        cell = cell.strip()
    try:
        return float(cell)
    except (TypeError, ValueError) as e:
        raise ValueError(
            f"Non-numeric cell at row {row}, column {column}: {cell!r}"
        ) from e


def _split_header(rows: Table, has_header: bool):
    rows = [list(r) for r in rows]
    if has_header:
        if not rows:
            raise InvalidDimensionError("Table has no header row")
        return [str(h).strip() for h in rows[0]], rows[1:], 1
    return None, rows, 0


def _check_rectangular(rows: List[List[Any]], width: int, offset: int) -> None:
    for i, row in enumerate(rows):
        if len(row) != width:
            raise InvalidDimensionError(
                f"Row {i + offset} has {len(row)} cells, expected {width}"
            )


def series_from_table(
    rows: Table,
    column: Union[int, str] = 0,
    has_header: bool = False,
) -> TimeSeries:
    """
    Read one column of a table as a time series.

    Parameters
    ----------
    rows : sequence of sequences
        Table cells, one inner sequence per row, oldest observation first.
    column : int or str, default=0
        Column index, or header name when ``has_header`` is True.
    has_header : bool, default=False
        Treat the first row as column names.

    Returns
    -------
    TimeSeries

    Raises
    ------
    ValueError
        If a cell in the column is not numeric, or ``column`` names a
        header that does not exist.
    IndexOutOfRangeError
        If the column index is outside the table.
    InvalidDimensionError
        If rows have different lengths.
    """
    header, body, offset = _split_header(rows, has_header)
    width = len(header) if header is not None else (len(body[0]) if body else 0)
    _check_rectangular(body, width, offset)

    if isinstance(column, str):
        if header is None:
            raise ValueError("Column names require has_header=True")
        if column not in header:
            raise ValueError(f"Unknown column: '{column}'. Available columns are: {header}")
        index = header.index(column)
    else:
        index = int(column)
        if not 0 <= index < width:
            raise IndexOutOfRangeError(f"Column {index} is outside a table of width {width}")

    values = [_to_float(row[index], i + offset, index) for i, row in enumerate(body)]
    return TimeSeries(np.array(values, dtype=float))


def matrix_from_table(
    rows: Table,
    has_header: bool = False,
    order: Order = Order.BY_ROW,
) -> Matrix:
    """
    Read every cell of a table as a matrix.

    With ``Order.BY_COLUMN`` each table row is taken as a matrix column.

    Raises
    ------
    ValueError
        If any cell is not numeric.
    InvalidDimensionError
        If rows have different lengths.
    """
    header, body, offset = _split_header(rows, has_header)
    width = len(header) if header is not None else (len(body[0]) if body else 0)
    _check_rectangular(body, width, offset)

    values = [
        [_to_float(cell, i + offset, j) for j, cell in enumerate(row)]
        for i, row in enumerate(body)
    ]
    if not values or width == 0:
        return Matrix.from_2d([])
    return Matrix.from_2d(values, order)
