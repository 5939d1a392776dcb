"""
CSV Exchange
============

Flat CSV export of a note's events and fault-tolerant import.

FORMAT:
=======
    date,kind,note,operator
    2024-05-01 21:30:00,Sleep,fell asleep quickly,Alice

- UTF-8, "\\n" line endings, comma-delimited, NO quoting
- date: "%Y-%m-%d %H:%M:%S" in local time
- kind: display label of EventKind
- note/operator: newlines and commas replaced by a single space (lossy)

ASYMMETRY (kept as-is):
- operator is exported but never imported; imported events are unattributed
"""

from __future__ import annotations
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Iterable, List, Optional, Tuple
import logging
import re

from ..contracts.base import Error, ErrorCode, Result
from ..contracts.events import EventKind, EventRecord, Note
from ..storage.contract import TimelineStore
from ..temporal.month_window import local_datetime, to_millis


logger = logging.getLogger(__name__)

CSV_HEADER = "date,kind,note,operator"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_FLATTEN = re.compile(r"\r\n|[\r\n,]")


def flatten_field(text: Optional[str]) -> str:
    """Replace each newline or comma with a single space."""
    if not text:
        return ""
    return _FLATTEN.sub(" ", text)


def format_row(event: EventRecord, tz: Optional[tzinfo] = None) -> str:
    date_str = local_datetime(event.timestamp, tz).strftime(DATE_FORMAT)
    return ",".join((
        date_str,
        event.kind.label,
        flatten_field(event.note),
        flatten_field(event.attribution),
    ))


def export_csv_text(events: Iterable[EventRecord], tz: Optional[tzinfo] = None) -> str:
    """Header plus one "\\n"-terminated row per event, in the given order."""
    lines = [CSV_HEADER]
    lines.extend(format_row(event, tz) for event in events)
    return "\n".join(lines) + "\n"


def parse_timestamp(value: str, tz: Optional[tzinfo] = None) -> int:
    """Milliseconds for a local "%Y-%m-%d %H:%M:%S" string. Raises ValueError."""
    parsed = datetime.strptime(value, DATE_FORMAT)
    if tz is not None:
        parsed = parsed.replace(tzinfo=tz)
    return to_millis(parsed)


def parse_line(line: str, tz: Optional[tzinfo] = None) -> Optional[EventRecord]:
    """One data line to an unattributed EventRecord, None if it must be skipped."""
    parts = line.split(",", 3)
    if len(parts) < 2:
        return None
    kind = EventKind.from_label(parts[1])
    if kind is None:
        return None
    try:
        timestamp = parse_timestamp(parts[0], tz)
    except ValueError:
        return None
    note = parts[2] if len(parts) >= 3 else ""
    return EventRecord(timestamp=timestamp, kind=kind, note=note)


def split_lines(text: str) -> List[str]:
    """
    Split on "\n" only, dropping one trailing "\r" per line and the empty
    piece after a final newline. Other Unicode line breaks stay in the text.
    """
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def parse_csv_text(text: str, tz: Optional[tzinfo] = None) -> Tuple[List[EventRecord], int]:
    """
    Parse CSV content.

    Returns (records, data_line_count). The first line is always treated
    as the header and discarded. Unknown kind labels and unparsable dates
    are skipped silently.
    """
    lines = split_lines(text)[1:]
    records = []
    for line in lines:
        record = parse_line(line, tz)
        if record is not None:
            records.append(record)
    return records, len(lines)


class CsvExchange:
    """
    Export and import of a note's events through a TimelineStore.

    Both directions return a Result: export yields the number of rows
    written, import the number of rows imported.
    """

    def __init__(self, store: TimelineStore, tz: Optional[tzinfo] = None):
        self._store = store
        self._tz = tz

    async def export_csv_text(self, note: Note) -> str:
        events = await self._store.get_all_events(note.owner_id, note.id)
        logger.info(f"Fetched {len(events)} events for export of note {note.id}")
        return export_csv_text(events, self._tz)

    async def export_to_path(self, note: Note, path: Path) -> Result:
        """Write the note's CSV to `path`. Store failures propagate."""
        logger.info(f"Starting CSV export for note: {note.name} (ID: {note.id})")
        content = await self.export_csv_text(note)
        try:
            Path(path).write_text(content, encoding="utf-8", newline="\n")
        except OSError as e:
            logger.error(f"Error during CSV export to {path}: {e}")
            return Result.failure(
                Error.create(ErrorCode.FILE_UNWRITABLE, f"Could not write {path}: {e}")
            )
        rows = content.count("\n") - 1
        logger.info(f"CSV export completed: {rows} rows")
        return Result.success(rows)

    async def import_csv_text(self, note: Note, text: str) -> Result:
        records, line_count = parse_csv_text(text, self._tz)
        if line_count == 0:
            return Result.failure(
                Error.create(ErrorCode.EMPTY_PAYLOAD, "File is empty or has no data rows")
            )

        skipped = line_count - len(records)
        if skipped:
            logger.info(f"Skipped {skipped} unparsable CSV lines")
        if not records:
            return Result.success(0)

        outcome = await self._store.save_events(note.owner_id, note.id, records)
        if not outcome.success:
            error = outcome.error or Error.create(ErrorCode.PARTIAL_WRITE, "Bulk write failed")
            logger.warning(f"CSV import partially applied: {outcome.written_count} of {len(records)}")
            return Result.failure(error.with_context("imported", str(outcome.written_count)))

        logger.info(f"CSV import completed: {outcome.written_count} events into note {note.id}")
        return Result.success(outcome.written_count)

    async def import_from_path(self, note: Note, path: Path) -> Result:
        """Read `path` and import it. An unreadable file is a hard failure."""
        try:
            text = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Could not read CSV file {path}: {e}")
            return Result.failure(
                Error.create(ErrorCode.FILE_UNREADABLE, f"Could not read {path}: {e}")
            )
        return await self.import_csv_text(note, text)
