"""CSV rendering of registry entries."""

from __future__ import annotations

import csv
import io
from typing import Callable, Iterable, Sequence, Tuple

from .models import Entry

ExportColumn = Tuple[str, Callable[[Entry], object]]

EXPORT_COLUMNS: Sequence[ExportColumn] = (
    ("Discord ID", lambda entry: entry.owner_id),
    ("Wallet Address", lambda entry: entry.address),
    ("List", lambda entry: entry.list_kind),
    ("Max Slots", lambda entry: entry.max_slots),
)


def render_csv(entries: Iterable[Entry], columns: Sequence[ExportColumn] = EXPORT_COLUMNS) -> str:
    """Render one header line plus one line per entry, in the order given."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow([name for name, _ in columns])
    for entry in entries:
        writer.writerow([getter(entry) for _, getter in columns])
    return buffer.getvalue()


def export_filename(list_kind: str = "") -> str:
    return f"{list_kind or 'wallets'}.csv"


__all__ = ["EXPORT_COLUMNS", "ExportColumn", "export_filename", "render_csv"]
