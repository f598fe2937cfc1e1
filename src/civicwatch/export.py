"""CSV export of the issue list for authorities."""

from __future__ import annotations

import csv
import time
from collections.abc import Iterable
from typing import TextIO

from civicwatch.models import Issue

CSV_HEADER = ("id", "description", "address", "tags", "solved", "upvotes", "createdAt", "submitterId")


def default_export_filename(now_ms: int | None = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"civicwatch_export_{now_ms}.csv"


def export_csv(issues: Iterable[Issue], stream: TextIO) -> int:
    """Write *issues* as CSV to *stream*. Returns the number of data rows."""
    writer = csv.writer(stream, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    count = 0
    for issue in issues:
        writer.writerow(
            (
                issue.id or "",
                issue.description,
                issue.address,
                ";".join(issue.tags),
                1 if issue.solved else 0,
                issue.upvote_count,
                issue.created_at.isoformat() if issue.created_at else "",
                issue.created_by,
            )
        )
        count += 1
    return count
