"""
crunchyscraper.crunchyreport.

Text export of collected history records, plus the DataFrame view used
for the optional CSV export.
"""

import logging
from collections.abc import Sequence
from dataclasses import fields
from datetime import datetime
from pathlib import Path

import pandas as pd

from .crunchyextract import HistoryRecord

logger = logging.getLogger(__name__)

RULE = "=" * 80
TITLE = "CRUNCHYROLL WATCH HISTORY EXPORT"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
FILENAME_FORMAT = "%Y-%m-%d.%H-%M-%S"

COLUMNS = [f.name for f in fields(HistoryRecord)]


def format_log_line(record: HistoryRecord) -> str:
    """
    Render one record, e.g. ``[2024-01-01] Show A - S1 E2: Title (45%)``.

    The URL, when known, goes on an indented second line.
    """
    line = f"[{record.watched_date or 'Unknown Date'}] "
    line += record.series_title or "Unknown Series"
    if record.season_info and record.season_info.strip():
        line += f" - {record.season_info}"
    if record.episode_number and record.episode_number.strip():
        line += f" - {record.episode_number}"
    if record.episode_title and record.episode_title.strip():
        line += f": {record.episode_title}"
    if record.progress and record.progress.strip():
        line += f" ({record.progress})"
    if record.url and record.url.strip():
        line += f"\n    URL: {record.url}"
    return line


def render_report(
    records: Sequence[HistoryRecord],
    generated_at: datetime | None = None,
) -> str:
    generated_at = generated_at or datetime.now()
    lines = [
        RULE,
        TITLE,
        f"Generated: {generated_at.strftime(TIMESTAMP_FORMAT)}",
        f"Total Entries: {len(records)}",
        RULE,
        "",
    ]
    for i, record in enumerate(records, start=1):
        lines.append(f"[{i}] {format_log_line(record)}")
        lines.append("")
    lines += [RULE, "END OF EXPORT", RULE]
    return "\n".join(lines) + "\n"


def write_report(path: str | Path, text: str) -> Path:
    """Write ``text`` to ``path`` in one go, creating parent directories."""
    out = Path(path).expanduser()
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(text, encoding="utf-8")
    logger.info("History exported to: %s", out.resolve())
    return out


def default_output_path(now: datetime | None = None) -> Path:
    """``~/Documents/YYYY-MM-DD.HH-MM-SS.crunchy.log``"""
    now = now or datetime.now()
    return Path.home() / "Documents" / f"{now.strftime(FILENAME_FORMAT)}.crunchy.log"


def records_to_dataframe(records: Sequence[HistoryRecord]) -> pd.DataFrame:
    if not records:
        return pd.DataFrame(columns=COLUMNS)
    return pd.DataFrame([r.as_dict() for r in records], columns=COLUMNS)
