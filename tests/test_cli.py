from unittest.mock import Mock, patch

import pytest
from playwright.sync_api import Error as PlaywrightError

import crunchyscraper_cli as cli
from crunchyscraper import Credentials, HistoryRecord, SessionNotReadyError, SessionState


def test_parse_driven_mode() -> None:
    args = cli.parse_args(["me@example.com", "pw", "Main", "out.log"])

    assert args.credentials == Credentials("me@example.com", "pw", "Main")
    assert args.output == "out.log"


def test_parse_manual_mode_without_output() -> None:
    args = cli.parse_args(["--manual", "--port", "9333"])

    assert args.credentials is None
    assert args.output is None
    assert args.port == 9333


@pytest.mark.parametrize(
    "argv",
    [[], ["me@example.com", "pw"], ["--manual", "a.log", "b.log"]],
)
def test_parse_rejects_wrong_arity(argv) -> None:
    with pytest.raises(SystemExit) as err:
        cli.parse_args(argv)
    assert err.value.code == 2


def test_no_headless_flag_forces_headed_browser() -> None:
    assert cli.parse_args(["--no-headless", "--manual"]).headless is False
    assert cli.parse_args(["--manual"]).headless is None


def test_password_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("CRUNCHYROLL_PASSWORD", "from-env")

    args = cli.parse_args(["me@example.com", "-", "Main"])

    assert args.credentials.password == "from-env"


def test_main_writes_report_and_csv(tmp_path) -> None:
    out = tmp_path / "export.log"
    csv = tmp_path / "csv" / "export.csv"
    scraper = Mock()
    scraper.run.return_value = [HistoryRecord(series_title="Show A", url="https://x/watch/1")]

    with patch("crunchyscraper_cli.HistoryScraper", return_value=scraper) as factory:
        code = cli.main(["--manual", "--headless", "--csv", str(csv), str(out)])

    assert code == 0
    cfg = factory.call_args.kwargs["cfg"]
    assert cfg.headless is True
    assert factory.call_args.kwargs["credentials"] is None
    assert "[1] [Unknown Date] Show A" in out.read_text(encoding="utf-8")
    assert csv.exists()
    scraper.close.assert_called_once()


def test_main_exits_nonzero_when_session_not_ready(tmp_path) -> None:
    out = tmp_path / "export.log"
    scraper = Mock()
    scraper.run.side_effect = SessionNotReadyError(SessionState.AWAITING_LOGIN, "nope")

    with patch("crunchyscraper_cli.HistoryScraper", return_value=scraper):
        code = cli.main(["me@example.com", "pw", "Main", str(out)])

    assert code == 1
    assert not out.exists()
    scraper.close.assert_called_once()


def test_main_exits_nonzero_when_browser_unreachable() -> None:
    with patch(
        "crunchyscraper_cli.HistoryScraper",
        side_effect=PlaywrightError("connect ECONNREFUSED 127.0.0.1:9222"),
    ):
        assert cli.main(["--manual"]) == 1


def test_main_exits_nonzero_on_write_error(tmp_path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    scraper = Mock()
    scraper.run.return_value = []

    with patch("crunchyscraper_cli.HistoryScraper", return_value=scraper):
        code = cli.main(["--manual", str(blocker / "export.log")])

    assert code == 1
