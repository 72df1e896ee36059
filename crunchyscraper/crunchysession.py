"""
crunchyscraper.crunchysession.

Session readiness: everything that has to happen before the history page
can be scraped.

Two state machines share the :class:`SessionReadiness` driver:

- :class:`DrivenSession` performs the login itself (cookie consent, human
  verification wait, credentials, profile selection, history page).
- :class:`ManualSession` attaches to a browser a human already signed into
  and only waits for the history page to be opened.

Helpers
-------
- wait_until(pred, timeout_s): polling helper returning True/False instead
  of raising for the "not yet" case.
- is_sso_url(url, cfg) / is_history_url(url, cfg): URL heuristics.
- DiagnosticScreenshots: observer invoked once when readiness fails.
"""

import enum
import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page

from .crunchyconfig import Config, SessionConfig
from .crunchyextract import SelectorResolver, is_session_lost

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    AWAITING_LOGIN = "awaiting_login"
    AWAITING_CAPTCHA = "awaiting_captcha"
    AWAITING_PROFILE_SELECTION = "awaiting_profile_selection"
    AWAITING_HISTORY_PAGE = "awaiting_history_page"
    READY = "ready"


@dataclass
class Credentials:
    email: str
    password: str
    profile_name: str = ""


class SessionNotReadyError(RuntimeError):
    """Raised when the session could not be brought to the history page."""

    def __init__(self, state: SessionState, message: str) -> None:
        super().__init__(message)
        self.state = state


def wait_until(pred: Callable[[], bool], timeout_s: float, poll_ms: int = 250) -> bool:
    """
    Poll ``pred`` until it returns True or ``timeout_s`` elapses.

    The predicate is evaluated at least once, then repeatedly with a delay
    of ``poll_ms`` milliseconds between attempts. Playwright errors raised
    by ``pred`` are logged at the debug level and treated as a False
    result, unless the browser session itself is gone.
    """
    deadline = time.monotonic() + timeout_s
    while True:
        try:
            if pred():
                return True
        except PlaywrightError as exc:
            if is_session_lost(exc):
                raise
            logger.debug("wait_until: predicate raised an exception: %s", exc)
        if time.monotonic() >= deadline:
            return False
        time.sleep(poll_ms / 1000)


def is_sso_url(url: str, cfg: SessionConfig) -> bool:
    """Return True when ``url`` is on the identity host or a login path."""
    parsed = urlparse(url or "")
    return parsed.hostname == cfg.sso_host or "/login" in parsed.path


def is_history_url(url: str, cfg: SessionConfig) -> bool:
    return bool(re.search(cfg.history_url_pattern, urlparse(url or "").path))


class DiagnosticScreenshots:
    """
    Failure observer that saves a full-page screenshot.

    Screenshot problems are logged and never mask the original failure.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def __call__(self, page: Page, state: SessionState) -> Path | None:
        path = self.directory / f"{state.value}_{int(time.time() * 1000)}.png"
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            page.screenshot(path=str(path), full_page=True)
        except (PlaywrightError, OSError) as exc:
            logger.warning("Failed to take screenshot: %s", exc)
            return None
        logger.info("Screenshot saved: %s", path)
        return path


class SessionReadiness:
    """
    Drive a page from ``initial_state`` to :attr:`SessionState.READY`.

    Subclasses map each state to a handler returning the next state. Any
    exception escaping a handler is the end of the run: the observer is
    called once with the failing state and the error is re-raised as
    :class:`SessionNotReadyError`.
    """

    initial_state = SessionState.AWAITING_LOGIN

    def __init__(
        self,
        page: Page,
        cfg: Config,
        observer: Callable[[Page, SessionState], object] | None = None,
    ) -> None:
        self.page = page
        self.cfg = cfg
        self.resolver = SelectorResolver(page)
        self.observer = observer or DiagnosticScreenshots(cfg.session.screenshot_dir)
        self.state = self.initial_state

    def _handlers(self) -> dict[SessionState, Callable[[], SessionState]]:  # pragma: no cover
        raise NotImplementedError

    def run(self) -> Page:
        """Run the state machine and return the page holding the history view."""
        handlers = self._handlers()
        while self.state is not SessionState.READY:
            logger.info("Session state: %s", self.state.value)
            try:
                self.state = handlers[self.state]()
            except Exception as exc:
                logger.exception("Session readiness failed in state %s", self.state.value)
                self.observer(self.page, self.state)
                if isinstance(exc, SessionNotReadyError):
                    raise
                msg = f"{self.state.value}: {exc}"
                raise SessionNotReadyError(self.state, msg) from exc
        logger.info("Session ready on %s", self.page.url)
        return self.page

    # ---- page signals

    def _marker_present(self, selectors: list[str]) -> bool:
        for sel in selectors:
            try:
                if self.page.locator(sel).count() > 0:
                    return True
            except PlaywrightError as exc:
                if is_session_lost(exc, self.page):
                    raise
                logger.debug("Marker %s failed: %s", sel, exc)
        return False

    def _challenge_present(self) -> bool:
        url = (self.page.url or "").lower()
        if any(m in url for m in self.cfg.session.challenge_url_markers):
            return True
        return self._marker_present(self.cfg.session.challenge_markers)


class DrivenSession(SessionReadiness):
    """
    Log in with credentials and pick a profile.

    States: AWAITING_LOGIN -> (AWAITING_CAPTCHA) -> AWAITING_PROFILE_SELECTION
    -> AWAITING_HISTORY_PAGE -> READY. The verification state is entered at
    most once, either before the credentials are submitted or while waiting
    for the login to be confirmed.
    """

    def __init__(
        self,
        page: Page,
        cfg: Config,
        email: str,
        password: str,
        profile_name: str = "",
        observer: Callable[[Page, SessionState], object] | None = None,
    ) -> None:
        super().__init__(page, cfg, observer)
        self.email = email
        self.password = password
        self.profile_name = profile_name
        self._submitted = False

    def _handlers(self) -> dict[SessionState, Callable[[], SessionState]]:
        return {
            SessionState.AWAITING_LOGIN: self._await_login,
            SessionState.AWAITING_CAPTCHA: self._await_captcha,
            SessionState.AWAITING_PROFILE_SELECTION: self._select_profile,
            SessionState.AWAITING_HISTORY_PAGE: self._open_history,
        }

    def _await_login(self) -> SessionState:
        s = self.cfg.session
        logger.info("Navigating to login page...")
        self.page.goto(s.login_url, wait_until="domcontentloaded")
        self._dismiss_cookie_consent()

        if self._challenge_present():
            return SessionState.AWAITING_CAPTCHA

        self._submit_credentials()
        confirmed = wait_until(
            lambda: self._logged_in() or self._challenge_present(),
            s.login_timeout_s,
            s.poll_ms,
        )
        if confirmed and self._logged_in():
            logger.info("Login successful!")
            return SessionState.AWAITING_PROFILE_SELECTION
        if confirmed:
            return SessionState.AWAITING_CAPTCHA
        msg = f"Login was not confirmed within {s.login_timeout_s}s (url={self.page.url})"
        raise SessionNotReadyError(self.state, msg)

    def _await_captcha(self) -> SessionState:
        s = self.cfg.session
        logger.warning(
            "Human verification detected, solve it in the browser window (waiting up to %ss)",
            s.captcha_timeout_s,
        )
        if not wait_until(lambda: not self._challenge_present(), s.captcha_timeout_s, s.poll_ms):
            msg = f"Human verification was not completed within {s.captcha_timeout_s}s"
            raise SessionNotReadyError(self.state, msg)
        logger.info("Human verification cleared")

        if not self._submitted and not self._logged_in():
            self._submit_credentials()
        if not wait_until(self._logged_in, s.login_timeout_s, s.poll_ms):
            msg = f"Login was not confirmed within {s.login_timeout_s}s (url={self.page.url})"
            raise SessionNotReadyError(self.state, msg)
        logger.info("Login successful!")
        return SessionState.AWAITING_PROFILE_SELECTION

    def _select_profile(self) -> SessionState:
        sel = self.cfg.selectors
        loc = self.resolver.maybe(self.page, sel.profile_cards)
        cards = loc.all() if loc is not None else []
        if not cards:
            logger.info("No profile selection shown, assuming a single-profile account")
            return SessionState.AWAITING_HISTORY_PAGE

        names = [self._profile_name(c) for c in cards]
        target = (self.profile_name or "").lower()
        for card, name in zip(cards, names):
            if target in name.lower():
                logger.info("Selecting profile: %s", name)
                card.click()
                break
        else:
            logger.warning(
                "Profile %r not found among %s, selecting the first one",
                self.profile_name,
                names,
            )
            cards[0].click()

        self.page.wait_for_timeout(self.cfg.session.profile_settle_ms)
        return SessionState.AWAITING_HISTORY_PAGE

    def _profile_name(self, card) -> str:
        try:
            text = card.inner_text(timeout=self.cfg.session.profile_read_timeout_ms)
        except PlaywrightError as exc:
            if is_session_lost(exc, self.page):
                raise
            logger.debug("Could not read profile name: %s", exc)
            return ""
        return (text or "").strip()

    def _open_history(self) -> SessionState:
        s = self.cfg.session
        logger.info("Navigating to history page...")
        self.page.goto(s.history_url, wait_until="domcontentloaded")
        if wait_until(
            lambda: self._marker_present(s.history_markers),
            s.history_timeout_s,
            s.poll_ms,
        ):
            logger.info("History page loaded")
        else:
            logger.warning("Could not verify history page loaded, continuing anyway")
        return SessionState.READY

    # ---- steps

    def _dismiss_cookie_consent(self) -> None:
        self.page.wait_for_timeout(self.cfg.session.consent_delay_ms)
        loc = self.resolver.maybe(self.page, self.cfg.selectors.cookie_accept)
        if loc is None:
            logger.debug("No cookie consent dialog found")
            return
        try:
            loc.first.click()
            logger.info("Cookie consent accepted")
        except PlaywrightError as exc:
            if is_session_lost(exc, self.page):
                raise
            logger.debug("Could not handle cookie consent: %s", exc)

    def _submit_credentials(self) -> None:
        sel = self.cfg.selectors
        logger.info("Entering credentials...")
        self.resolver.locate(self.page, sel.email).fill(self.email)
        self.resolver.locate(self.page, sel.password).fill(self.password)
        self.resolver.locate(self.page, sel.submit).click()
        self._submitted = True

    def _logged_in(self) -> bool:
        s = self.cfg.session
        url = self.page.url or ""
        if self._challenge_present():
            return False
        if urlparse(url).hostname and not is_sso_url(url, s):
            return True
        if any(frag in url for frag in s.post_login_url_fragments):
            return True
        return self._marker_present(s.post_login_markers)


class ManualSession(SessionReadiness):
    """
    Wait for a human to open the history page in an attached browser.

    Every tab of the attached context is polled; the first one showing the
    history page becomes :attr:`page`.
    """

    initial_state = SessionState.AWAITING_HISTORY_PAGE

    def _handlers(self) -> dict[SessionState, Callable[[], SessionState]]:
        return {SessionState.AWAITING_HISTORY_PAGE: self._await_history_tab}

    def _await_history_tab(self) -> SessionState:
        s = self.cfg.session
        logger.info(
            "Waiting up to %ss for the history page (%s) to be opened",
            s.manual_timeout_s,
            s.history_url,
        )
        found: list[Page] = []

        def _check() -> bool:
            page = self._history_tab()
            if page is not None:
                found.append(page)
            return page is not None

        if not wait_until(_check, s.manual_timeout_s, s.poll_ms):
            msg = f"History page was not opened within {s.manual_timeout_s}s"
            raise SessionNotReadyError(self.state, msg)

        self.page = found[-1]
        self.resolver = SelectorResolver(self.page)
        logger.info("History page detected: %s", self.page.url)
        self.page.wait_for_timeout(int(s.manual_settle_s * 1000))
        return SessionState.READY

    def _history_tab(self) -> Page | None:
        try:
            pages = list(self.page.context.pages) or [self.page]
        except PlaywrightError as exc:
            if is_session_lost(exc):
                raise
            pages = [self.page]
        for page in pages:
            if is_history_url(page.url, self.cfg.session):
                return page
        return None
