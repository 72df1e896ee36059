from datetime import datetime

from crunchyscraper import (
    HistoryRecord,
    default_output_path,
    format_log_line,
    records_to_dataframe,
    render_report,
    write_report,
)
from crunchyscraper.crunchyreport import COLUMNS, RULE

WHEN = datetime(2024, 5, 6, 7, 8, 9)


def test_entry_line_with_url() -> None:
    record = HistoryRecord(
        series_title="Show A",
        episode_title="Ep 1",
        watched_date="2024-01-01",
        url="https://x/watch/1",
    )

    lines = render_report([record], WHEN).splitlines()

    i = lines.index("[1] [2024-01-01] Show A: Ep 1")
    assert lines[i + 1] == "    URL: https://x/watch/1"


def test_log_line_optional_parts_in_order() -> None:
    record = HistoryRecord(
        series_title="Show",
        season_info="S1 E2",
        episode_number="E2",
        episode_title="Title",
        progress="45%",
    )

    assert format_log_line(record) == "[Unknown Date] Show - S1 E2 - E2: Title (45%)"


def test_log_line_placeholders_and_blank_parts() -> None:
    record = HistoryRecord(episode_title="  ", url="https://x/watch/2")

    assert format_log_line(record) == "[Unknown Date] Unknown Series\n    URL: https://x/watch/2"


def test_report_layout() -> None:
    records = [HistoryRecord(series_title="A"), HistoryRecord(series_title="B")]

    text = render_report(records, WHEN)

    assert text.splitlines() == [
        RULE,
        "CRUNCHYROLL WATCH HISTORY EXPORT",
        "Generated: 2024-05-06 07:08:09",
        "Total Entries: 2",
        RULE,
        "",
        "[1] [Unknown Date] A",
        "",
        "[2] [Unknown Date] B",
        "",
        RULE,
        "END OF EXPORT",
        RULE,
    ]
    assert text.endswith("\n")


def test_empty_report() -> None:
    text = render_report([], WHEN)

    assert "Total Entries: 0" in text
    assert "[1]" not in text


def test_write_report_creates_parents_and_overwrites(tmp_path) -> None:
    out = tmp_path / "nested" / "dir" / "export.log"
    write_report(out, "old")

    write_report(out, "new text\n")

    assert out.read_text(encoding="utf-8") == "new text\n"


def test_default_output_path() -> None:
    path = default_output_path(WHEN)

    assert path.name == "2024-05-06.07-08-09.crunchy.log"
    assert path.parent.name == "Documents"


def test_records_to_dataframe() -> None:
    df = records_to_dataframe([HistoryRecord(series_title="A", url="u")])

    assert list(df.columns) == COLUMNS
    assert df.loc[0, "series_title"] == "A"
    assert len(records_to_dataframe([])) == 0
