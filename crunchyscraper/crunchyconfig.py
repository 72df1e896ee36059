"""
crunchyscraper.crunchyconfig
=================================

Configuration dataclasses and helpers used to coerce a JSON configuration
into Python objects consumed by the history scraper.

Every field carries a working default for the streaming site, so a run
needs no configuration file at all. A JSON document only has to name the
keys it overrides; :func:`load_config` reads such a file and returns a
typed :class:`Config` instance.
"""

import json
import types
from dataclasses import MISSING, dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any, Literal, Union, get_args, get_origin


@dataclass
class SelectorCandidate:
    """
    An individual selector candidate.

    A selector candidate is one of the ordered fallbacks attempted when
    resolving an element. It contains the selector string and runtime
    hints such as engine (CSS or XPath), visibility state and timeout.

    Fields
    ------
    selector: CSS or XPath selector string.
    engine: either ``css`` or ``xpath``. Defaults to ``css``.
    state: one of ``attached``, ``visible`` or ``hidden`` describing the
        required DOM state before the element is considered resolved.
    timeout_ms: how long to wait in milliseconds before considering this
        candidate a failure.
    allow_unstable: when True, allows selectors that are heuristically
        considered brittle (not recommended by default).
    multi_match: when True, expects multiple matching elements instead of
        a single match.
    attribute: attribute to read instead of the rendered text when the
        candidate is used for field extraction.
    fallback_attribute: attribute read when the rendered text is empty.
    """

    selector: str
    engine: Literal["css", "xpath"] = "css"
    state: Literal["attached", "visible", "hidden"] = "attached"
    timeout_ms: int = 10000
    allow_unstable: bool = False
    multi_match: bool = False
    attribute: str | None = None
    fallback_attribute: str | None = None


@dataclass
class SelectorSet:
    """
    A container for an ordered list of :class:`SelectorCandidate`.

    Selector sets are used in the configuration where a single logical
    element may be located by multiple alternate selectors.
    """

    candidates: list[SelectorCandidate]

    @classmethod
    def of(cls, *selectors: str, **hints: Any) -> "SelectorSet":
        """Build a set of CSS candidates sharing the same ``hints``."""
        return cls([SelectorCandidate(s, **hints) for s in selectors])


def _cards() -> SelectorSet:
    # structural classes first, loose substring matches and bare links last
    return SelectorSet.of(
        ".history-playable-card",
        "[data-t='playable-card']",
        ".playable-card",
        ".erc-browse-collection .browse-card",
        ".watchlist-card",
        ".history-item",
        "[class*='history'] [class*='card']",
        "a[href*='/watch/']",
    )


@dataclass
class FieldSelectors:
    """
    Per-field extraction chains applied inside a single history card.

    Each chain is tried in order and the first candidate producing a
    non-empty value wins.
    """

    url: SelectorSet = field(
        default_factory=lambda: SelectorSet.of("a[href*='/watch/']", attribute="href"),
    )
    series_title: SelectorSet = field(
        default_factory=lambda: SelectorSet.of(
            "[data-t='series-title']",
            ".series-title",
            "h5",
            "[class*='series']",
            ".title a",
        ),
    )
    episode_title: SelectorSet = field(
        default_factory=lambda: SelectorSet.of(
            "[data-t='episode-title']",
            ".episode-title",
            "h6",
            "[class*='episode']",
            ".subtitle",
        ),
    )
    episode_info: SelectorSet = field(
        default_factory=lambda: SelectorSet.of(
            "[data-t='episode-info']",
            ".episode-info",
            "[class*='season']",
            ".meta-info",
            "span[class*='episode']",
        ),
    )
    watched_date: SelectorSet = field(
        default_factory=lambda: SelectorSet.of(
            "[data-t='watched-date']",
            ".watched-date",
            "time",
            "[class*='date']",
            fallback_attribute="datetime",
        ),
    )
    progress: SelectorSet = field(
        default_factory=lambda: SelectorSet.of(
            "[data-t='progress']",
            ".progress-bar",
            "[class*='progress']",
            attribute="style",
        ),
    )


@dataclass
class Selectors:
    """Selector sets for the history page and the login/profile flow."""

    cards: SelectorSet = field(default_factory=_cards)
    fields: FieldSelectors = field(default_factory=FieldSelectors)

    cookie_accept: SelectorSet = field(
        default_factory=lambda: SelectorSet.of(
            "button[data-t='cookie-consent-accept-all']",
            "button.consent-btn",
            "#onetrust-accept-btn-handler",
            "button[aria-label*='Accept']",
            "button[aria-label*='Akzeptieren']",
            state="visible",
            timeout_ms=2000,
        ),
    )
    email: SelectorSet = field(
        default_factory=lambda: SelectorSet.of(
            "input[name='username']",
            "input[type='email']",
            "input#login_form_name",
            state="visible",
        ),
    )
    password: SelectorSet = field(
        default_factory=lambda: SelectorSet.of(
            "input[name='password']",
            "input[type='password']",
            "input#login_form_password",
            state="visible",
        ),
    )
    submit: SelectorSet = field(
        default_factory=lambda: SelectorSet.of(
            "button[type='submit']",
            "button[data-t='login-btn']",
            ".login-button",
            state="visible",
        ),
    )
    profile_cards: SelectorSet = field(
        default_factory=lambda: SelectorSet.of(
            "[data-t='profile-card']",
            ".profile-card",
            ".erc-profile-item",
            "[class*='profile-item']",
            state="visible",
            timeout_ms=5000,
            multi_match=True,
        ),
    )


@dataclass
class ScrollConfig:
    """Bounds and pacing of the scroll/extract loop."""

    max_rounds: int = 100
    stall_rounds: int = 3
    settle_ms: int = 1500
    scroll_step_px: int = 800


@dataclass
class SessionConfig:
    """
    Session readiness configuration.

    URLs, timeouts and the page signals polled while moving from the login
    page to a populated history page.
    """

    login_url: str = "https://www.crunchyroll.com/login"
    history_url: str = "https://www.crunchyroll.com/history"
    sso_host: str = "sso.crunchyroll.com"
    history_url_pattern: str = r"/history(?:[/?#]|$)"

    captcha_timeout_s: int = 300
    login_timeout_s: int = 60
    history_timeout_s: int = 30
    manual_timeout_s: int = 600
    manual_settle_s: float = 3.0
    profile_settle_ms: int = 2000
    profile_read_timeout_ms: int = 1000
    consent_delay_ms: int = 2000
    poll_ms: int = 250

    post_login_url_fragments: list[str] = field(
        default_factory=lambda: ["/home", "/discover", "/profiles", "/watchlist"],
    )
    post_login_markers: list[str] = field(
        default_factory=lambda: [
            "[data-t='header-profile-btn']",
            ".erc-profile-menu",
            ".erc-header-avatar",
        ],
    )
    challenge_url_markers: list[str] = field(
        default_factory=lambda: ["captcha", "challenge", "cdn-cgi"],
    )
    challenge_markers: list[str] = field(
        default_factory=lambda: [
            "iframe[src*='captcha']",
            "iframe[src*='challenges.cloudflare.com']",
            "#challenge-form",
            ".cf-turnstile",
            ".g-recaptcha",
        ],
    )
    history_markers: list[str] = field(
        default_factory=lambda: [
            "[data-t='history-content']",
            ".history-content",
            ".erc-history-content",
            ".watchlist-card",
            "[class*='history']",
        ],
    )

    remote_debug_port: int = 9222
    screenshot_dir: Path = field(default_factory=lambda: Path.home() / "Documents")


@dataclass
class Config:
    """
    Top-level runtime configuration.

    This dataclass mirrors the keys accepted by the JSON configuration
    files read with :func:`load_config`.
    """

    browser: Literal["chromium", "firefox", "webkit"] = "chromium"
    headless: bool = False
    locale: str = "en-US"
    viewport: dict = field(default_factory=lambda: {"width": 1920, "height": 1080})

    selectors: Selectors = field(default_factory=Selectors)
    scroll: ScrollConfig = field(default_factory=ScrollConfig)
    session: SessionConfig = field(default_factory=SessionConfig)


def _unwrap_optional(t: Any) -> Any:
    """
    Return the inner type if ``t`` is Optional[...] else ``t``.

    This helper is used when coercing JSON values into typed dataclass
    fields so Optional[...] annotations are handled correctly.
    """
    if get_origin(t) in (Union, types.UnionType):
        non_none = [a for a in get_args(t) if a is not type(None)]
        if len(non_none) == 1:
            return non_none[0]
    return t


def coerce_value(val: Any, target_type: type[Any]) -> Any:
    inner_type = _unwrap_optional(target_type)

    if is_dataclass(inner_type) and isinstance(val, dict):
        return coerce_nested(val, inner_type)

    if inner_type is Path and isinstance(val, str):
        return Path(val).expanduser()

    origin = get_origin(inner_type)
    args = get_args(inner_type)

    # List[...] of dataclasses
    if origin in (list, tuple) and args:
        inner_arg = args[0]
        return type(val)(coerce_value(v, inner_arg) for v in val)

    if origin is dict and len(args) == 2:
        key_type, value_type = args
        return {
            coerce_value(k, key_type): coerce_value(v, value_type)
            for k, v in val.items()
        }

    return val


def coerce_nested(obj: dict, cls: type[Any]) -> Any:
    if not is_dataclass(cls):
        return obj

    kwargs = {}
    for f in fields(cls):
        if f.name not in obj:
            continue
        val = obj[f.name]
        if val is MISSING:
            continue
        kwargs[f.name] = coerce_value(val, f.type)

    return cls(**kwargs)


def load_config(path: str | Path) -> Config:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    return coerce_nested(raw, Config)
