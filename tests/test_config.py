import json
from pathlib import Path

from crunchyscraper import Config, SelectorCandidate, load_config


def test_defaults_need_no_file() -> None:
    cfg = Config()

    assert cfg.scroll.max_rounds == 100
    assert cfg.scroll.stall_rounds == 3
    assert cfg.scroll.settle_ms == 1500
    assert cfg.session.remote_debug_port == 9222
    assert cfg.session.captcha_timeout_s == 300
    assert cfg.session.manual_timeout_s == 600
    assert cfg.selectors.cards.candidates[-1].selector == "a[href*='/watch/']"
    assert cfg.selectors.fields.watched_date.candidates[0].fallback_attribute == "datetime"


def test_default_selector_sets_are_independent() -> None:
    a, b = Config(), Config()
    a.selectors.cards.candidates.clear()

    assert b.selectors.cards.candidates


def test_load_config_overrides_only_given_keys(tmp_path) -> None:
    raw = {
        "headless": True,
        "scroll": {"max_rounds": 5},
        "selectors": {
            "cards": {"candidates": [{"selector": "//li[@class='card']", "engine": "xpath"}]},
            "fields": {"url": {"candidates": [{"selector": "a", "attribute": "href"}]}},
        },
        "session": {"screenshot_dir": "~/shots", "history_markers": [".h"]},
        "unknown_key": 1,
    }
    path = tmp_path / "cfg.json"
    path.write_text(json.dumps(raw), encoding="utf-8")

    cfg = load_config(path)

    assert cfg.headless is True
    assert cfg.scroll.max_rounds == 5
    assert cfg.scroll.stall_rounds == 3
    card = cfg.selectors.cards.candidates[0]
    assert isinstance(card, SelectorCandidate)
    assert card.engine == "xpath"
    assert cfg.selectors.fields.url.candidates[0].attribute == "href"
    assert cfg.selectors.fields.series_title.candidates
    assert cfg.session.screenshot_dir == Path("~/shots").expanduser()
    assert cfg.session.history_markers == [".h"]
    assert cfg.session.login_timeout_s == 60
