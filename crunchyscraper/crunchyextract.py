"""
crunchyscraper.crunchyextract.

Selector resolution and extraction primitives for watch-history cards.

- :class:`SelectorResolver` waits for configured controls using ordered
  selector candidates (login form, consent banner, profile cards).
- :class:`CardLocator` returns the history cards currently rendered.
- :class:`FieldExtractor` turns one card into a :class:`HistoryRecord`
  using per-field fallback chains.
- :class:`DedupAccumulator` keeps the first-seen copy of every URL.
"""

import logging
import re
from dataclasses import asdict, dataclass
from urllib.parse import urljoin

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Locator, Page

from .crunchyconfig import FieldSelectors, SelectorCandidate, SelectorSet

logger = logging.getLogger(__name__)

UNSTABLE_PATTERNS = [
    r":nth-(child|of-type)\(",  # brittle positional CSS
    r"//.*text\(\)\s*=",  # text-based XPath
    r"^/{1,2}(?!html)",  # absolute XPaths from root (allow 'html' root narrowly)
]

SEASON_PATTERN = re.compile(r"\bs\d+|\bseason\b|\bstaffel\b", re.IGNORECASE)
EPISODE_PATTERN = re.compile(
    r"(?:\b|(?<=\d))e\d+|\bep\b|\bepisode\b|\bfolge\b",
    re.IGNORECASE,
)
PROGRESS_PATTERN = re.compile(r"width:\s*(\d+(?:\.\d+)?%)", re.IGNORECASE)

_SESSION_LOST_SIGNALS = (
    "target closed",
    "has been closed",
    "browser has disconnected",
    "connection closed",
    "session closed",
)


def is_session_lost(exc: BaseException, page: Page | None = None) -> bool:
    """Return True when ``exc`` means the browser session itself is gone."""
    text = str(exc).lower()
    if any(sig in text for sig in _SESSION_LOST_SIGNALS):
        return True
    if page is None:
        return False
    try:
        return bool(page.is_closed())
    except PlaywrightError:
        return True


def _loc(root: Locator | Page, cand: SelectorCandidate) -> Locator:
    if cand.engine == "css":
        return root.locator(cand.selector)
    return root.locator(f"xpath={cand.selector}")


# ----------------------------
# Records
# ----------------------------


@dataclass(frozen=True)
class HistoryRecord:
    """
    One watch-history entry.

    Every field is optional; a record is only worth keeping when it carries
    a URL or a series title (see :attr:`is_valid`). Two records with the
    same non-null ``url`` describe the same entry.
    """

    series_title: str | None = None
    episode_title: str | None = None
    season_info: str | None = None
    episode_number: str | None = None
    watched_date: str | None = None
    progress: str | None = None
    url: str | None = None

    @property
    def is_valid(self) -> bool:
        return bool(self.url or self.series_title)

    def as_dict(self) -> dict[str, str | None]:
        return asdict(self)


class DedupAccumulator:
    """
    Ordered collection of records keyed by URL.

    Records without a URL cannot be compared and are always accepted.
    Insertion order is the export order.
    """

    def __init__(self) -> None:
        self._records: list[HistoryRecord] = []
        self._seen: set[str] = set()

    def offer(self, record: HistoryRecord) -> bool:
        """Add ``record`` unless its URL was already seen; return True if added."""
        if record.url is not None:
            if record.url in self._seen:
                return False
            self._seen.add(record.url)
        self._records.append(record)
        return True

    @property
    def records(self) -> list[HistoryRecord]:
        return list(self._records)

    @property
    def seen_urls(self) -> frozenset[str]:
        return frozenset(self._seen)

    def __len__(self) -> int:
        return len(self._records)


# ----------------------------
# Selector resolution
# ----------------------------


class SelectorResolver:
    """
    Resolve selector candidates into Playwright Locator objects.

    The resolver accepts a :class:`SelectorSet` (an ordered list of
    :class:`SelectorCandidate`) and attempts each candidate in order until a
    matching locator is found. It performs lightweight validation against
    a set of unstable selector heuristics and provides a convenience
    ``maybe`` method that returns None instead of raising on failure.
    """

    def __init__(self, page: Page) -> None:
        self.page = page

    def _validate(self, cand: SelectorCandidate) -> None:
        if cand.allow_unstable:
            return
        for pat in UNSTABLE_PATTERNS:
            if re.search(pat, cand.selector):
                msg = f"Rejected unstable selector: {cand.selector}"
                raise ValueError(msg)

    def locate(self, root: Locator | Page, selset: SelectorSet) -> Locator:
        last_err: Exception | None = None
        for cand in selset.candidates:
            try:
                self._validate(cand)
                loc = _loc(root, cand)

                # Sets that legitimately match several nodes (profile cards)
                # wait on the first node; a strict mode violation on a
                # single-match candidate falls back the same way.
                try:
                    if cand.multi_match:
                        loc.first.wait_for(state=cand.state, timeout=cand.timeout_ms)
                    else:
                        loc.wait_for(state=cand.state, timeout=cand.timeout_ms)
                except PlaywrightError as e:
                    msg = str(e)
                    if "strict mode violation" in msg or "resolved to" in msg:
                        loc = loc.first
                        loc.wait_for(state=cand.state, timeout=cand.timeout_ms)
                    else:
                        raise

            except (PlaywrightError, ValueError) as e:
                if isinstance(e, PlaywrightError) and is_session_lost(e):
                    raise
                last_err = e
                continue
            else:
                return loc

        sel_list = [c.selector for c in selset.candidates]
        msg = f"None of the candidates matched: {sel_list} | last_error={last_err}"
        raise RuntimeError(msg)

    def maybe(self, root: Locator | Page, selset: SelectorSet) -> Locator | None:
        try:
            return self.locate(root, selset)
        except (ValueError, RuntimeError):
            return None


# ----------------------------
# Card location
# ----------------------------


class CardLocator:
    """
    Find the history cards currently rendered on the page.

    Strategies are tried in order and the first one yielding any element
    wins, so structural selectors shadow the loose substring and bare-link
    fallbacks at the end of the list. A strategy whose query fails counts
    as "no match".
    """

    def __init__(self, cards: SelectorSet) -> None:
        self.cards = cards

    def locate(self, page: Page) -> list[Locator]:
        for cand in self.cards.candidates:
            try:
                found = _loc(page, cand).all()
            except PlaywrightError as exc:
                if is_session_lost(exc, page):
                    raise
                logger.debug("Selector %s failed: %s", cand.selector, exc)
                continue
            if found:
                logger.debug("Found %d cards with selector: %s", len(found), cand.selector)
                return found
        return []


# ----------------------------
# Field extraction
# ----------------------------


def classify_episode_info(text: str | None) -> tuple[str | None, str | None]:
    """
    Split episode metadata into ``(season_info, episode_number)``.

    Text naming both a season and an episode ("S1 E12", "Season 1,
    Episode 12") is season info; otherwise any text with a digit is an
    episode number. Anything else is dropped.
    """
    if not text:
        return None, None
    if SEASON_PATTERN.search(text) and EPISODE_PATTERN.search(text):
        return text, None
    if any(ch.isdigit() for ch in text):
        return None, text
    return None, None


def parse_progress(style: str | None) -> str | None:
    """Return the ``width`` percentage of an inline style, e.g. ``"45%"``."""
    if not style:
        return None
    m = PROGRESS_PATTERN.search(style)
    return m.group(1) if m else None


class FieldExtractor:
    """
    Extract a :class:`HistoryRecord` from one card.

    Each field has an ordered chain of candidates (see
    :class:`crunchyscraper.crunchyconfig.FieldSelectors`); the first
    candidate producing a usable value wins and failing candidates are
    skipped. When neither title could be found the card's rendered text is
    split into lines as a last resort.
    """

    def __init__(self, selectors: FieldSelectors, read_timeout_ms: int = 1000) -> None:
        self.fields = selectors
        self.read_timeout_ms = read_timeout_ms

    def extract(self, card: Locator, base_url: str = "") -> HistoryRecord | None:
        url = self._url(card, base_url)
        series_title = self._first(card, self.fields.series_title)
        episode_title = self._first(card, self.fields.episode_title)
        season_info, episode_number = classify_episode_info(
            self._first(card, self.fields.episode_info),
        )
        watched_date = self._first(card, self.fields.watched_date)
        progress = self._first(card, self.fields.progress, parse=parse_progress)

        if series_title is None and episode_title is None:
            lines = self._card_lines(card)
            if len(lines) > 0:
                series_title = lines[0]
            if len(lines) > 1:
                episode_title = lines[1]
            if len(lines) > 2:
                season_info = lines[2]

        record = HistoryRecord(
            series_title=series_title,
            episode_title=episode_title,
            season_info=season_info,
            episode_number=episode_number,
            watched_date=watched_date,
            progress=progress,
            url=url,
        )
        return record if record.is_valid else None

    def _first(self, card: Locator, selset: SelectorSet, parse=None) -> str | None:
        for cand in selset.candidates:
            value = self._read(card, cand)
            if value and parse is not None:
                value = parse(value)
            if value:
                return value
        return None

    def _read(self, card: Locator, cand: SelectorCandidate) -> str | None:
        try:
            loc = _loc(card, cand)
            if loc.count() == 0:
                return None
            el = loc.first
            if cand.attribute:
                value = el.get_attribute(cand.attribute, timeout=self.read_timeout_ms)
            else:
                value = el.inner_text(timeout=self.read_timeout_ms)
            value = (value or "").strip()
            if not value and cand.fallback_attribute:
                value = el.get_attribute(
                    cand.fallback_attribute,
                    timeout=self.read_timeout_ms,
                )
                value = (value or "").strip()
        except PlaywrightError as exc:
            if is_session_lost(exc):
                raise
            logger.debug("Candidate %s failed: %s", cand.selector, exc)
            return None
        return value or None

    def _url(self, card: Locator, base_url: str) -> str | None:
        href = None
        try:
            tag = card.evaluate("el => el.tagName", timeout=self.read_timeout_ms) or ""
            if tag.lower() == "a":
                href = card.get_attribute("href", timeout=self.read_timeout_ms)
        except PlaywrightError as exc:
            if is_session_lost(exc):
                raise
            logger.debug("Could not read card tag: %s", exc)
        href = (href or "").strip() or self._first(card, self.fields.url)
        if not href:
            logger.debug("Could not find URL in card")
            return None
        return urljoin(base_url, href) if base_url else href

    def _card_lines(self, card: Locator) -> list[str]:
        try:
            text = card.inner_text(timeout=self.read_timeout_ms) or ""
        except PlaywrightError as exc:
            if is_session_lost(exc):
                raise
            logger.debug("Could not read card text: %s", exc)
            return []
        return [line.strip() for line in text.splitlines() if line.strip()]
