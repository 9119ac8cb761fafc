"""
Tests for loading, normalising and saving the YAML configuration.
"""

import os
import stat

import pytest
import yaml

from conftest import NOW
from feedrelay.config import YamlStateStore, dump_state, normalise
from feedrelay.errors import ConfigError, PersistenceError
from feedrelay.models import MonitorState, Visibility


CONFIG = """
instance:
  url: https://mastodon.example/
  lang: pl
  limit: 500
  timezone: Europe/Warsaw
  save: true
  last_monit: 0
  feed:
    - name: News
      url: https://news.example/rss
      token: abc
      visibility: unlisted
      prefix: PL
      interval: 15
      last_run: 1699999000
    - url: https://blog.example/feed
      token: def
      visibility: shouting
      interval: 0
    - name: Draft
      url: https://draft.example/rss
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "feed.yml"
    path.write_text(CONFIG, encoding="utf-8")
    return path


def test_load_applies_defaults(config_file):
    state = YamlStateStore(str(config_file)).load()

    assert state.url == "https://mastodon.example"
    assert state.lang == "pl"
    assert state.save is True
    assert len(state.feeds) == 3

    news, blog, draft = state.feeds
    assert news.visibility == Visibility.UNLISTED
    assert news.interval == 15
    assert news.last_run == 1699999000

    assert blog.name == "blog.example"
    assert blog.visibility == Visibility.PRIVATE
    assert blog.interval == 10
    assert blog.last_run == state.last_monit.load()

    assert not draft.enabled
    assert [f.name for f in state.enabled_feeds()] == ["News", "blog.example"]


def test_normalise_seeds_stale_last_monit():
    state = MonitorState(last_monit=NOW - 2 * 3600)
    normalise(state, now=NOW)
    assert state.last_monit.load() == NOW - NOW % 60 - 55 * 60

    fresh = MonitorState(last_monit=NOW - 600)
    normalise(fresh, now=NOW)
    assert fresh.last_monit.load() == NOW - 600


def test_normalise_replaces_unknown_timezone():
    state = normalise(MonitorState(timezone="Mars/Olympus"), now=NOW)
    assert state.timezone == "UTC"


@pytest.mark.parametrize(
    "content",
    [
        "instance: [unclosed",
        "something_else:\n  url: x\n",
        "",
        "instance:\n  limit: lots\n",
    ],
)
def test_invalid_config_raises(tmp_path, content):
    path = tmp_path / "feed.yml"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError):
        YamlStateStore(str(path)).load()


def test_missing_config_raises(tmp_path):
    with pytest.raises(ConfigError):
        YamlStateStore(str(tmp_path / "absent.yml")).load()


def test_save_round_trip_keeps_only_persistent_fields(config_file):
    store = YamlStateStore(str(config_file))
    state = store.load()
    news = state.feeds[0]
    news.last_run = NOW
    news.count = 7
    news.followers = 42
    state.last_monit.store(NOW)

    store.save(state)

    data = yaml.safe_load(config_file.read_text(encoding="utf-8"))
    instance = data["instance"]
    assert instance["last_monit"] == NOW
    saved_news = instance["feed"][0]
    assert saved_news["last_run"] == NOW
    assert saved_news["url"] == "https://news.example/rss"
    assert saved_news["visibility"] == "unlisted"
    for runtime in ("count", "followers", "progress", "account_id", "send_time"):
        assert runtime not in saved_news
    assert "hashlink" not in saved_news

    assert stat.S_IMODE(os.stat(config_file).st_mode) == 0o600
    assert [p.name for p in config_file.parent.iterdir()] == ["feed.yml"]

    reloaded = store.load()
    assert reloaded.feeds[0].last_run == NOW
    assert reloaded.feeds[0].prefix == "PL"


def test_save_to_missing_directory_raises(tmp_path):
    store = YamlStateStore(str(tmp_path / "missing" / "feed.yml"))
    with pytest.raises(PersistenceError):
        store.save(MonitorState())


def test_dump_state_wraps_instance():
    data = dump_state(MonitorState(url="https://m.example", feed=[{"url": "https://a.example/rss"}]))
    assert list(data) == ["instance"]
    assert data["instance"]["feed"][0]["name"] == "a.example"


def test_feed_index_matches_prefix():
    state = MonitorState(feed=[{"name": "Alpha news"}, {"name": "Beta"}])
    assert state.feed_index("Alpha") == 0
    assert state.feed_index("Beta") == 1
    assert state.feed_index("Gamma") == -1


def test_last_check_str_formats_in_location():
    state = MonitorState(timezone="UTC")
    assert state.last_check_str() == ""
    state.last_check.store(3600)
    assert state.last_check_str() == "1970-01-01 01:00:00"
