"""
crunchyscraper.crunchyscraper.

Core scraper runtime: the scroll/extract/dedup loop and the Playwright
lifecycle around it.

The public contract:

- HistoryScraper(cfg, credentials=None).run() -> list[HistoryRecord]

With credentials the scraper launches its own browser and logs in
(:class:`~crunchyscraper.crunchysession.DrivenSession`); without them it
attaches to a Chrome started with ``--remote-debugging-port`` and waits
for a human to open the history page
(:class:`~crunchyscraper.crunchysession.ManualSession`).
"""

import logging

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page, sync_playwright

from .crunchyconfig import Config, ScrollConfig
from .crunchyextract import (
    CardLocator,
    DedupAccumulator,
    FieldExtractor,
    HistoryRecord,
    is_session_lost,
)
from .crunchysession import (
    Credentials,
    DrivenSession,
    ManualSession,
    SessionReadiness,
)

logger = logging.getLogger(__name__)


# ----------------------------
# Pagination
# ----------------------------


class InfiniteScrollPaginator:
    """
    Scroll the window and give lazily loaded cards time to render.

    A failed scroll is logged and the settle delay still applies; the loop
    above decides when the history is exhausted.
    """

    def __init__(self, page: Page, cfg: ScrollConfig) -> None:
        self.page = page
        self.scroll_step = int(cfg.scroll_step_px)
        self.settle_ms = int(cfg.settle_ms)

    def next_page(self) -> None:
        try:
            self.page.evaluate(f"window.scrollBy(0, {self.scroll_step})")
        except PlaywrightError as exc:
            if is_session_lost(exc, self.page):
                raise
            logger.debug("InfiniteScrollPaginator: scroll attempt failed: %s", exc)
        self.page.wait_for_timeout(self.settle_ms)


# ----------------------------
# Collection loop
# ----------------------------


class HistoryCollector:
    """
    Collect deduplicated history records from a scrolling page.

    Each round locates the rendered cards, extracts and offers every card,
    then scrolls and waits. The loop stops after ``stall_rounds``
    consecutive rounds without a new record (once at least one record
    exists) or after ``max_rounds`` rounds, whichever comes first.

    A card failing extraction is skipped. Losing the browser session or an
    interrupt ends the loop with the records gathered so far.
    """

    def __init__(
        self,
        cfg: Config,
        locator: CardLocator | None = None,
        extractor: FieldExtractor | None = None,
    ) -> None:
        self.cfg = cfg
        self.locator = locator or CardLocator(cfg.selectors.cards)
        self.extractor = extractor or FieldExtractor(cfg.selectors.fields)
        self.rounds = 0

    def collect(self, page: Page) -> list[HistoryRecord]:
        sc = self.cfg.scroll
        acc = DedupAccumulator()
        paginator = InfiniteScrollPaginator(page, sc)
        stalls = 0
        self.rounds = 0

        logger.info("Scraping history entries...")
        try:
            while self.rounds < sc.max_rounds:
                self.rounds += 1
                before = len(acc)
                self._read_round(page, acc)
                logger.info("Found %d unique entries so far...", len(acc))

                if len(acc) == before:
                    stalls += 1
                    if stalls >= sc.stall_rounds and len(acc) > 0:
                        logger.info(
                            "No new entries found after %d scroll rounds, finishing...",
                            stalls,
                        )
                        break
                else:
                    stalls = 0

                if self.rounds < sc.max_rounds:
                    paginator.next_page()
        except KeyboardInterrupt:
            logger.warning("Interrupted, keeping %d entries collected so far", len(acc))
        except PlaywrightError as exc:
            if not is_session_lost(exc, page):
                raise
            logger.error("Browser session lost after %d rounds: %s", self.rounds, exc)

        logger.info("Total unique entries found: %d", len(acc))
        return acc.records

    def _read_round(self, page: Page, acc: DedupAccumulator) -> None:
        base_url = page.url or ""
        for card in self.locator.locate(page):
            try:
                record = self.extractor.extract(card, base_url)
            except PlaywrightError as exc:
                if is_session_lost(exc, page):
                    raise
                logger.debug("Error extracting entry: %s", exc)
                continue
            if record is not None:
                acc.offer(record)


# ----------------------------
# Scraper runtime
# ----------------------------


class HistoryScraper:
    """
    Orchestrates a single scraping run using a :class:`Config`.

    Responsibilities:

    - manage the Playwright lifecycle (launch, or attach over CDP)
    - bring the session to the history page
    - run the :class:`HistoryCollector` on the ready page.
    """

    def __init__(self, cfg: Config, credentials: Credentials | None = None) -> None:
        self.cfg = cfg
        self.credentials = credentials
        self._play = sync_playwright().start()
        try:
            if credentials is None:
                self._attach()
            else:
                self._launch()
        except PlaywrightError:
            self._play.stop()
            raise

    def _launch(self) -> None:
        cfg = self.cfg
        args = []
        if cfg.browser == "chromium":
            args.append("--disable-blink-features=AutomationControlled")
        browser_type = getattr(self._play, cfg.browser)
        self.browser = browser_type.launch(headless=cfg.headless, args=args)
        self.context = self.browser.new_context(viewport=cfg.viewport, locale=cfg.locale)
        self.page: Page = self.context.new_page()
        logger.info("Browser started (%s, headless=%s)", cfg.browser, cfg.headless)

    def _attach(self) -> None:
        endpoint = f"http://127.0.0.1:{self.cfg.session.remote_debug_port}"
        logger.info("Attaching to running browser at %s", endpoint)
        self.browser = self._play.chromium.connect_over_cdp(endpoint)
        contexts = self.browser.contexts
        self.context = contexts[0] if contexts else self.browser.new_context()
        pages = self.context.pages
        self.page = pages[0] if pages else self.context.new_page()

    def close(self) -> None:
        """Close a launched browser, or disconnect from an attached one."""
        try:
            self.browser.close()
        except PlaywrightError as exc:
            logger.warning("Error closing browser: %s", exc)
        finally:
            self._play.stop()

    def readiness(self) -> SessionReadiness:
        if self.credentials is None:
            return ManualSession(self.page, self.cfg)
        c = self.credentials
        return DrivenSession(self.page, self.cfg, c.email, c.password, c.profile_name)

    def run(self) -> list[HistoryRecord]:
        """
        Bring the session to the history page and collect its records.

        Raises :class:`~crunchyscraper.crunchysession.SessionNotReadyError`
        when the history page could not be reached; collection problems
        only shorten the returned list.
        """
        self.page = self.readiness().run()
        return HistoryCollector(self.cfg).collect(self.page)
