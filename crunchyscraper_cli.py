import argparse
import logging
import os
from pathlib import Path

from playwright.sync_api import Error as PlaywrightError

from crunchyscraper import (
    Config,
    Credentials,
    HistoryScraper,
    SessionNotReadyError,
    default_output_path,
    load_config,
    records_to_dataframe,
    render_report,
    write_report,
)

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

USAGE = """\
%(prog)s EMAIL PASSWORD PROFILE [OUTPUT]   log in and export the history
%(prog)s --manual [OUTPUT]                 attach to a signed-in Chrome

Start Chrome with --remote-debugging-port=9222 for manual mode, sign in,
then open the history page. Pass PASSWORD as '-' to read it from
CRUNCHYROLL_PASSWORD. OUTPUT defaults to
~/Documents/YYYY-MM-DD.HH-MM-SS.crunchy.log."""


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(prog="crunchyscraper", usage=USAGE)
    ap.add_argument("params", nargs="*", help=argparse.SUPPRESS)
    ap.add_argument("--manual", action="store_true", help="Wait for a human-driven login")
    ap.add_argument("--cfg", type=str, default="", help="Optional path to a JSON config")
    ap.add_argument(
        "--headless",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Run the launched browser headless (driven mode)",
    )
    ap.add_argument("--port", type=int, default=None, help="Remote debugging port (manual mode)")
    ap.add_argument("--csv", type=str, default="", help="Optional path to export CSV")
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args(argv)

    args.credentials = None
    args.output = None
    if args.manual:
        if len(args.params) > 1:
            ap.error("manual mode takes at most one argument: OUTPUT")
        args.output = args.params[0] if args.params else None
        return args

    if len(args.params) not in (3, 4):
        ap.error("driven mode needs EMAIL PASSWORD PROFILE [OUTPUT]")
    email, password, profile = args.params[:3]
    if password == "-":
        password = os.environ.get("CRUNCHYROLL_PASSWORD", "")
        if not password:
            ap.error("PASSWORD is '-' but CRUNCHYROLL_PASSWORD is not set")
    args.credentials = Credentials(email, password, profile)
    args.output = args.params[3] if len(args.params) == 4 else None
    return args


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    cfg = load_config(args.cfg) if args.cfg else Config()
    if args.headless is not None:
        cfg.headless = args.headless
    if args.port:
        cfg.session.remote_debug_port = args.port

    out = Path(args.output) if args.output else default_output_path()

    try:
        scraper = HistoryScraper(cfg=cfg, credentials=args.credentials)
    except PlaywrightError as exc:
        logger.error("Could not start the browser session: %s", exc)
        return 1

    try:
        records = scraper.run()
    except SessionNotReadyError as exc:
        logger.error("Scraper failed: %s", exc)
        return 1
    finally:
        scraper.close()

    try:
        write_report(out, render_report(records))
        if args.csv:
            csv = Path(args.csv)
            csv.parent.mkdir(parents=True, exist_ok=True)
            records_to_dataframe(records).to_csv(csv, index=False, encoding="utf-8")
            logger.info("Saved CSV to: %s", csv)
    except OSError as exc:
        logger.error("Could not write the export: %s", exc)
        return 1

    logger.info("Scraping completed successfully! Found %d entries", len(records))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
