"""Spreadsheet export of extracted instruments."""

from .instrument_list import (
    COLUMNS,
    InstrumentRow,
    build_instrument_rows,
    export_instrument_list,
)

__all__ = [
    "COLUMNS",
    "InstrumentRow",
    "build_instrument_rows",
    "export_instrument_list",
]
