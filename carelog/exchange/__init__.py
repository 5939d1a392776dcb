"""
Exchange Layer

RESPONSIBILITY: Moving a note's events in and out as flat CSV
ALLOWED INPUTS: EventRecord sequences, CSV text, file paths
OUTPUTS: CSV text, Result(count)

WHAT THIS LAYER MUST NOT DO:
============================
- Talk to a backend other than through TimelineStore
- Retry a failed bulk write
- Carry attribution across an import
"""

from .csv_exchange import (
    CSV_HEADER,
    DATE_FORMAT,
    CsvExchange,
    export_csv_text,
    flatten_field,
    format_row,
    parse_csv_text,
    parse_line,
)

__all__ = [
    'CSV_HEADER',
    'DATE_FORMAT',
    'CsvExchange',
    'export_csv_text',
    'flatten_field',
    'format_row',
    'parse_csv_text',
    'parse_line',
]
